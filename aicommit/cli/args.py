"""CLI Argument Parsing"""

import argparse

import argcomplete

from aicommit import COMMIT_TYPE_NAMES, __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='aic',
        description='Generate AI-powered commit messages',
        epilog='Example: aic (copies message to clipboard)'
    )

    parser.add_argument('-v', '--version', action='version', version=f'%(prog)s {__version__}')

    # Generation options
    parser.add_argument('-c', '--choose', type=int, nargs='?', const=2, default=None, metavar='N', help='Show N options (default: 2), pick one')
    parser.add_argument('--hint', type=str, metavar='TEXT', help='Add context: --hint "fixing the login bug"')
    parser.add_argument('-t', '--type', type=str, choices=COMMIT_TYPE_NAMES, help='Force commit type')
    parser.add_argument('-s', '--style', type=str, choices=['conventional', 'simple', 'detailed'], help='Commit message style')
    parser.add_argument('--no-body', action='store_true', help='Generate subject line only')

    # Provider options
    parser.add_argument('-p', '--provider', type=str, choices=['auto', 'ollama', 'claude'], help='Provider (auto picks adaptively)')
    parser.add_argument('-m', '--model', type=str, metavar='MODEL', help='Model name (single provider only)')
    parser.add_argument('--no-cache', action='store_true', help='Skip the response cache')

    # Output options
    parser.add_argument('--no-copy', action='store_true', help='Print message only, do not copy to clipboard')
    parser.add_argument('--verbose', action='store_true', help='Show debug logging and selection details')

    # Maintenance
    parser.add_argument('--display-config', action='store_true', help='Show current configuration')
    parser.add_argument('--cache-stats', action='store_true', help='Show response cache statistics')
    parser.add_argument('--clear-cache', action='store_true', help='Delete all cached responses')
    parser.add_argument('--cleanup-cache', action='store_true', help='Delete expired cached responses')
    parser.add_argument('--provider-status', action='store_true', help='Show provider metrics and weights')
    parser.add_argument('--install-completion', action='store_true', help='Show shell tab completion setup')

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    argcomplete.autocomplete(parser)
    return parser.parse_args(argv)
