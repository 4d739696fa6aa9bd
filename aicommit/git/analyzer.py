"""Git Analyzer - read staged changes from git."""

import subprocess
from dataclasses import dataclass, field


@dataclass
class FileChange:
    path: str
    additions: int
    deletions: int

    @property
    def total_changes(self) -> int:
        return self.additions + self.deletions


@dataclass
class StagedChanges:
    """The staged unified diff plus per-file line counts."""
    files: list[FileChange] = field(default_factory=list)
    diff: str = ""

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    @property
    def is_empty(self) -> bool:
        return not self.files


class GitError(Exception):
    """Raised when git operations fail."""
    pass


class GitAnalyzer:
    """Runs git in the current directory."""

    def __init__(self):
        self._run_git('rev-parse', '--git-dir')

    def _run_git(self, *args: str) -> str:
        try:
            result = subprocess.run(
                ['git', *args],
                capture_output=True,
                text=True,
                check=True,
                encoding='utf-8',
                errors='replace'
            )
        except FileNotFoundError:
            raise GitError("Git is not installed or not in PATH")
        except subprocess.CalledProcessError as e:
            if args[:1] == ('rev-parse',):
                raise GitError("Not inside a git repository")
            raise GitError(f"Git command failed: git {' '.join(args)}\n{e.stderr}")
        return result.stdout

    def get_staged_changes(self) -> StagedChanges:
        return StagedChanges(
            files=parse_numstat(self._run_git('diff', '--staged', '--numstat')),
            diff=self._run_git('diff', '--staged'),
        )


def parse_numstat(output: str) -> list[FileChange]:
    """Parse ``git diff --numstat``; binary files ('-') count as zero lines."""
    files = []
    for line in output.strip().split('\n'):
        parts = line.split('\t')
        if len(parts) < 3:
            continue
        additions = int(parts[0]) if parts[0] != '-' else 0
        deletions = int(parts[1]) if parts[1] != '-' else 0
        files.append(FileChange(path=parts[2], additions=additions, deletions=deletions))
    return files
