"""
aicommit

AI commit messages from staged git changes, dispatched across several
providers with caching, circuit breaking and adaptive provider selection.
"""

__version__ = "1.0.0"

# Conventional commit types shared by prompt building, response validation
# and the CLI's --type choices
COMMIT_TYPES = {
    'feat': 'A new feature or capability',
    'fix': 'A bug fix',
    'refactor': 'Code restructuring without behavior change',
    'chore': 'Maintenance tasks, dependencies, tooling',
    'docs': 'Documentation only changes',
    'test': 'Adding or updating tests',
    'style': 'Formatting, whitespace, no code change',
    'perf': 'Performance improvement',
    'ci': 'CI/CD configuration changes',
    'build': 'Build system or external dependency changes',
}

COMMIT_TYPE_NAMES = list(COMMIT_TYPES.keys())
