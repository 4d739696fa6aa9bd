"""Diff Processor - turn staged changes into prompt context and selection hints."""

import os
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import IntEnum

from aicommit.core.provider_performance import SelectionContext
from aicommit.git.analyzer import FileChange, StagedChanges


class Priority(IntEnum):
    """Order in which files are offered to the model."""
    SOURCE = 1
    TEST = 2
    CONFIG = 3
    DOCS = 4
    NOISE = 99


PRIORITY_LABELS = {
    Priority.SOURCE: "Source",
    Priority.TEST: "Tests",
    Priority.CONFIG: "Config",
    Priority.DOCS: "Docs",
}

LANGUAGES = {
    '.py': 'python', '.js': 'javascript', '.jsx': 'javascript', '.mjs': 'javascript',
    '.ts': 'typescript', '.tsx': 'typescript', '.php': 'php', '.java': 'java',
    '.go': 'go', '.rs': 'rust', '.rb': 'ruby', '.c': 'c', '.h': 'c', '.cpp': 'cpp',
}

COMPLEX_LOGIC_RE = re.compile(r'^[+-]\s*(if|elif|else|for|while|switch|case|try|except|catch|async|await)\b')


@dataclass
class ProcessedDiff:
    """Prompt-ready view of the staged changes."""
    summary: str
    detailed_diff: str
    total_files: int = 0
    included_files: int = 0
    filtered_files: int = 0
    truncated: bool = False
    file_details: list[tuple[str, int, int]] = field(default_factory=list)
    context: SelectionContext = field(default_factory=SelectionContext)


@dataclass
class ProcessorConfig:
    max_tokens: int = 3000
    max_lines_per_file: int = 200
    simple_change_lines: int = 20


class DiffProcessor:
    """Classifies files, trims the diff to a token budget and derives hints
    for provider selection."""

    PATTERNS: dict[Priority, list[str]] = {
        Priority.NOISE: [
            r'(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|Cargo\.lock|Gemfile\.lock)$',
            r'\.(min\.js|min\.css|map|pyc|class)$', r'(^|/)(dist|build|node_modules|vendor|\.?venv)/',
            r'__pycache__', r'\.egg-info/', r'\.DS_Store$',
        ],
        Priority.TEST: [
            r'(^|/)(tests?|specs?|__tests__)/', r'[._](test|spec)\.', r'Tests?\.java$',
        ],
        Priority.DOCS: [
            r'\.(md|rst|txt)$', r'(^|/)docs/', r'README', r'CHANGELOG', r'LICENSE',
        ],
        Priority.CONFIG: [
            r'\.(json|ya?ml|toml|ini)$', r'\.env', r'\.config\.', r'(^|/)(config|settings)/',
            r'(Makefile|Dockerfile)$', r'docker-compose',
        ],
    }

    def __init__(self, config: ProcessorConfig | None = None):
        self.config = config or ProcessorConfig()
        self._compiled = {
            priority: [re.compile(p, re.IGNORECASE) for p in patterns]
            for priority, patterns in self.PATTERNS.items()
        }

    def process(self, changes: StagedChanges) -> ProcessedDiff:
        classified = [(f, self.priority(f.path)) for f in changes.files]
        kept = sorted(
            ((f, p) for f, p in classified if p != Priority.NOISE),
            key=lambda item: (item[1], -item[0].total_changes),
        )
        detailed, included, truncated = self._budget_diff(kept, changes.diff)

        return ProcessedDiff(
            summary=self._summary(kept, len(classified) - len(kept)),
            detailed_diff=detailed,
            total_files=len(classified),
            included_files=included,
            filtered_files=len(classified) - len(kept),
            truncated=truncated,
            file_details=[(f.path, f.additions, f.deletions) for f, _ in kept],
            context=self.selection_context(kept, changes.diff),
        )

    def priority(self, path: str) -> Priority:
        for priority in (Priority.NOISE, Priority.TEST, Priority.DOCS, Priority.CONFIG):
            if any(p.search(path) for p in self._compiled[priority]):
                return priority
        return Priority.SOURCE

    def selection_context(self, files: list[tuple[FileChange, Priority]], diff: str) -> SelectionContext:
        """Hints the provider scorer uses to match a change to a backend."""
        total = sum(f.total_changes for f, _ in files)
        code = sum(f.total_changes for f, p in files if p in (Priority.SOURCE, Priority.TEST))
        extensions = [os.path.splitext(f.path)[1].lower() for f, _ in files]
        languages = Counter(LANGUAGES[ext] for ext in extensions if ext in LANGUAGES)
        branches = sum(1 for line in diff.split('\n') if COMPLEX_LOGIC_RE.match(line))

        return SelectionContext(
            has_semantic_context=bool(languages),
            primary_language=languages.most_common(1)[0][0] if languages else None,
            code_ratio=code / total if total else 0.0,
            has_complex_logic=branches >= 5,
            is_simple_change=len(files) <= 2 and total <= self.config.simple_change_lines,
        )

    def _summary(self, files: list[tuple[FileChange, Priority]], noise_count: int) -> str:
        lines = ["FILES CHANGED:"]
        current = None
        for file, priority in files:
            if priority != current:
                current = priority
                lines.append(f"\n[{PRIORITY_LABELS.get(priority, 'Other')}]")
            lines.append(f"  {file.path} (+{file.additions} -{file.deletions})")
        if noise_count:
            lines.append(f"\n[Filtered: {noise_count} files (lock files, generated code)]")
        return "\n".join(lines)

    def _budget_diff(self, files: list[tuple[FileChange, Priority]], diff: str) -> tuple[str, int, bool]:
        """Per-file diffs in priority order until the token budget runs out."""
        if not diff:
            return "", 0, False

        per_file = split_diff_by_file(diff)
        parts = []
        tokens = 0
        for file, _ in files:
            if file.path not in per_file:
                continue
            text = self._clip(per_file[file.path], file.path)
            cost = len(text) // 4
            if tokens + cost > self.config.max_tokens:
                return "\n".join(parts), len(parts), True
            parts.append(text)
            tokens += cost
        return "\n".join(parts), len(parts), False

    def _clip(self, file_diff: str, path: str) -> str:
        lines = file_diff.split('\n')
        limit = self.config.max_lines_per_file
        if len(lines) <= limit:
            return file_diff
        return '\n'.join(lines[:limit] + [f"... [{len(lines) - limit} more lines truncated from {path}]"])


def split_diff_by_file(diff: str) -> dict[str, str]:
    files: dict[str, list[str]] = {}
    current = None
    for line in diff.split('\n'):
        if line.startswith('diff --git'):
            match = re.search(r'diff --git a/(.+?) b/', line)
            current = match.group(1) if match else None
            if current:
                files[current] = [line]
        elif current:
            files[current].append(line)
    return {path: '\n'.join(lines) for path, lines in files.items()}
