"""Prompt Builder - the text every provider receives."""

from dataclasses import dataclass

from aicommit import COMMIT_TYPES
from aicommit.git import ProcessedDiff

# (min files, bullet range): bigger changes get more bullets
BULLET_RANGES = [
    (15, "5-6"),
    (8, "4-5"),
    (4, "3-4"),
    (0, "1-2"),
]


@dataclass
class PromptConfig:
    hint: str | None = None
    forced_type: str | None = None
    num_options: int = 1
    style: str = "conventional"
    include_body: bool = True
    max_subject_length: int = 72


class PromptBuilder:
    """Assembles the prompt from tagged sections."""

    def build(self, diff: ProcessedDiff, config: PromptConfig | None = None) -> str:
        config = config or PromptConfig()
        sections = [
            self._format_section(config, diff.total_files),
            self._changes_section(diff),
            self._hint_section(config),
            self._output_section(config),
        ]
        return "\n\n".join(s for s in sections if s)

    def _format_section(self, config: PromptConfig, file_count: int) -> str:
        limit = config.max_subject_length
        if config.style == "simple":
            lines = [f"Subject: imperative mood, lowercase, at most {limit} chars, without type prefixes."]
        else:
            lines = [f"Subject: type(scope): summary, imperative mood, lowercase, at most {limit} chars."]
            lines.append("Scope is one word naming the module or feature, never a file path.")
            if config.forced_type:
                lines.append(f"Use type '{config.forced_type}' for this commit.")
            else:
                lines.append("Types:")
                lines.extend(f"  - {name}: {desc}" for name, desc in COMMIT_TYPES.items())

        if config.include_body or config.style == "detailed":
            bullets = next(r for minimum, r in BULLET_RANGES if file_count >= minimum)
            lines.append(f"Body: {bullets} bullets ({file_count} files), each saying what changed and why.")
        else:
            lines.append("Do NOT include a body. Subject line only.")

        return "<format>\n" + "\n".join(lines) + "\n</format>"

    def _changes_section(self, diff: ProcessedDiff) -> str:
        parts = ["<changes>", diff.summary]
        if diff.detailed_diff:
            parts.extend(["", "DIFF:", diff.detailed_diff])
        if diff.truncated:
            parts.append("\n[Diff truncated due to size; use the file summary for scope.]")
        parts.append("</changes>")
        return "\n".join(parts)

    def _hint_section(self, config: PromptConfig) -> str:
        if not config.hint:
            return ""
        return f'<context>\nThe developer says: "{config.hint}"\nUse it only where the diff agrees.\n</context>'

    def _output_section(self, config: PromptConfig) -> str:
        if config.num_options <= 1:
            return ("<instructions>\nWrite exactly ONE commit message. Start directly with the subject line. "
                    "No markdown, no preamble, no explanation.\n</instructions>")

        labels = "\n\n".join(f"[Option {i}]\n<commit message>" for i in range(1, config.num_options + 1))
        return (f"<instructions>\nWrite {config.num_options} commit messages, each from a different angle "
                f"(technical change, user impact, ...). Label them exactly:\n\n{labels}\n\n"
                "No markdown, no preamble.\n</instructions>")
