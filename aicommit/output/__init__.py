"""Terminal Output Formatting Package"""

import os
import re
import sys
import threading


class Colors:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    MAGENTA = '\033[35m'
    CYAN = '\033[36m'


def _supports_color() -> bool:
    if os.environ.get('NO_COLOR'):
        return False
    if os.environ.get('FORCE_COLOR'):
        return True
    return hasattr(sys.stdout, 'isatty') and sys.stdout.isatty() and sys.platform != 'win32'


def _supports_unicode() -> bool:
    try:
        '✓'.encode(sys.stdout.encoding or 'utf-8')
        return True
    except (UnicodeEncodeError, LookupError):
        return False


COLORS_ENABLED = _supports_color()
UNICODE_ENABLED = _supports_unicode()

CHECK = '✓' if UNICODE_ENABLED else '[OK]'
CROSS = '✗' if UNICODE_ENABLED else '[X]'


def _colorize(text: str, *codes: str) -> str:
    if not COLORS_ENABLED:
        return text
    return f"{''.join(codes)}{text}{Colors.RESET}"


def success(text: str) -> str:
    return _colorize(text, Colors.GREEN)


def error(text: str) -> str:
    return _colorize(text, Colors.RED)


def warning(text: str) -> str:
    return _colorize(text, Colors.YELLOW)


def info(text: str) -> str:
    return _colorize(text, Colors.CYAN)


def dim(text: str) -> str:
    return _colorize(text, Colors.DIM)


def bold(text: str) -> str:
    return _colorize(text, Colors.BOLD)


def print_success(message: str) -> None:
    print(f"{success(CHECK)} {message}")


def print_error(message: str) -> None:
    print(f"{error(CROSS)} {error(message)}", file=sys.stderr)


PHASE_COLORS = {
    'CLOSED': Colors.GREEN,
    'HALF_OPEN': Colors.YELLOW,
    'OPEN': Colors.RED,
}


def phase_label(phase: str) -> str:
    """Colored circuit breaker phase name."""
    return _colorize(phase, PHASE_COLORS.get(phase, ''))


COMMIT_TYPE_COLORS = {
    'feat': Colors.GREEN,
    'fix': Colors.RED,
    'refactor': Colors.YELLOW,
    'docs': Colors.CYAN,
    'test': Colors.MAGENTA,
    'perf': Colors.GREEN,
    'chore': Colors.DIM,
    'style': Colors.DIM,
    'ci': Colors.CYAN,
    'build': Colors.CYAN,
}


def colorize_commit_type(message: str) -> str:
    """Color the type(scope): prefix of the subject line."""
    if not COLORS_ENABLED:
        return message
    subject, _, rest = message.partition('\n')
    match = re.match(r'^(\w+)(\([^)]*\))?(!?:)', subject)
    if match and match.group(1) in COMMIT_TYPE_COLORS:
        prefix = match.group(0)
        subject = _colorize(prefix, Colors.BOLD, COMMIT_TYPE_COLORS[match.group(1)]) + subject[len(prefix):]
    return subject + ('\n' + rest if rest else '')


class Spinner:
    """Animated spinner while waiting on a provider. Use as context manager."""
    FRAMES = ['⠋', '⠙', '⠹', '⠸', '⠼', '⠴', '⠦', '⠧', '⠇', '⠏'] if UNICODE_ENABLED else ['-', '\\', '|', '/']

    def __init__(self):
        self._thread = None
        self._stop = threading.Event()

    def _spin(self):
        idx = 0
        while not self._stop.is_set():
            print(f'\r\033[K{self.FRAMES[idx % len(self.FRAMES)]} ', end='', flush=True)
            idx += 1
            self._stop.wait(0.08)

    def __enter__(self):
        if sys.stdout.isatty():
            self._stop.clear()
            self._thread = threading.Thread(target=self._spin, daemon=True)
            self._thread.start()
        return self

    def __exit__(self, *args):
        self._stop.set()
        if self._thread:
            self._thread.join()
            print('\r\033[K', end='', flush=True)


__all__ = [
    "Colors", "COLORS_ENABLED", "UNICODE_ENABLED", "CHECK", "CROSS",
    "success", "error", "warning", "info", "dim", "bold",
    "print_success", "print_error", "phase_label",
    "colorize_commit_type", "Spinner", "COMMIT_TYPE_COLORS",
]
