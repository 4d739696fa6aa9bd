"""CLI Utility Functions"""

import subprocess
import sys

from aicommit.output import bold, dim, info, colorize_commit_type


def copy_to_clipboard(text: str) -> tuple[bool, str]:
    """Copy text to clipboard. Returns (success, failure_reason)."""
    data = text.encode('utf-8')
    try:
        if sys.platform == 'win32':
            subprocess.run(['clip'], input=data, check=True)
        elif sys.platform == 'darwin':
            subprocess.run(['pbcopy'], input=data, check=True)
        else:
            try:
                subprocess.run(['xclip', '-selection', 'clipboard'], input=data, check=True)
            except FileNotFoundError:
                subprocess.run(['xsel', '--clipboard', '--input'], input=data, check=True)
        return True, ""
    except FileNotFoundError:
        if sys.platform == 'linux':
            return False, "Install xclip or xsel: sudo apt install xclip"
        return False, "No clipboard tool found"
    except (subprocess.CalledProcessError, OSError) as e:
        return False, f"Clipboard command failed: {e}"


def format_option(message: str, number: int) -> str:
    subject, *body = colorize_commit_type(message).split('\n')
    parts = [f"{info(f'[{number}]')} {bold(subject)}"]
    body = [line for line in body if line.strip()]
    if body:
        parts.append("")
        parts.extend(f"    {line}" for line in body)
    return '\n'.join(parts)


def choose_option(options: list[str]) -> int | None:
    """Show numbered options and read a choice. None means cancelled."""
    print()
    print(f"\n\n{dim('    · · ·')}\n\n".join(format_option(opt, i) for i, opt in enumerate(options, 1)))
    print()
    while True:
        try:
            choice = input(f"Select [1-{len(options)}] or (q)uit: ").strip().lower()
        except (KeyboardInterrupt, EOFError):
            return None
        if choice == 'q':
            return None
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            return int(choice) - 1
        print(f"Enter 1-{len(options)} or q")
