"""CLI Main Entry Point"""

import asyncio
import logging
import os
import sys
import time
from contextlib import nullcontext

from aicommit.config import Config, ConfigurationError, load_config
from aicommit.core import (
    BreakerRegistry,
    CacheManager,
    CircuitEventLogger,
    CircuitMetrics,
    CommitDispatcher,
    InteractionLog,
    ProviderPerformanceManager,
)
from aicommit.git import DiffProcessor, GitAnalyzer, GitError
from aicommit.llm import ProviderError, create_clients
from aicommit.output import (
    CHECK, Spinner, bold, colorize_commit_type, dim, info, phase_label, print_error, success, warning,
)
from aicommit.prompts import PromptBuilder, PromptConfig

from aicommit.cli.args import parse_args
from aicommit.cli.commands import (
    cleanup_cache,
    clear_cache,
    display_config,
    run_install_completion,
    show_cache_stats,
    show_provider_status,
)
from aicommit.cli.utils import choose_option, copy_to_clipboard


def build_dispatcher(config: Config, provider: str, model: str | None) -> CommitDispatcher:
    """Wire clients, cache, breakers, history and selector together."""
    names = config.providers if provider == 'auto' else [provider]
    clients = create_clients(names, model=model, timeout=config.call_timeout)

    history = InteractionLog()
    metrics = CircuitMetrics()
    registry = BreakerRegistry(config.breaker_config(), observers=[CircuitEventLogger(), metrics])
    selector = ProviderPerformanceManager(list(clients), history=history, registry=registry)
    cache = CacheManager(max_entries=config.cache_max_entries, ttl=config.cache_ttl) if config.cache_enabled else None

    return CommitDispatcher(clients, cache, selector, registry, history=history, config=config, metrics=metrics)


def _resolve_settings(args, config: Config) -> tuple[str, str | None]:
    """Apply CLI > environment > config file precedence."""
    provider = args.provider or os.environ.get('AIC_PROVIDER') or config.provider
    model = args.model or os.environ.get('AIC_MODEL') or config.model

    timeout = os.environ.get('AIC_TIMEOUT')
    if timeout:
        try:
            config.call_timeout = float(timeout)
        except ValueError:
            print(f"Config warning: Invalid AIC_TIMEOUT '{timeout}', using {config.call_timeout}", file=sys.stderr)
    if args.style:
        config.style = args.style
    if args.no_body:
        config.include_body = False
    if args.no_cache:
        config.cache_enabled = False
    return provider, model


def _display_file_list(processed, max_shown: int) -> None:
    if not processed.file_details:
        return
    print(bold("Staged changes:"))
    for path, additions, deletions in processed.file_details[:max_shown]:
        print(dim(f"  {path} (+{additions} -{deletions})"))
    remaining = len(processed.file_details) - max_shown
    if remaining > 0:
        print(dim(f"  ... and {remaining} more files"))
    if processed.filtered_files:
        print(dim(f"  {processed.filtered_files} noise files filtered"))


def _display_message(message: str) -> None:
    width = max((len(line) for line in message.split('\n')), default=40)
    subject, _, body = colorize_commit_type(message).partition('\n')
    print(f"\n{dim('─' * width)}")
    print(bold(subject))
    if body:
        print(body)
    print(dim('─' * width))


def _display_breaker_activity(dispatcher: CommitDispatcher) -> None:
    if dispatcher.metrics is None:
        return
    for name in dispatcher.clients:
        snap = dispatcher.metrics.snapshot(name)
        if snap['total_requests'] or snap['rejected_requests']:
            print(dim(f"  {name}: {snap['successful_requests']} ok, {snap['failed_requests']} failed, "
                      f"{snap['rejected_requests']} rejected, circuit ")
                  + phase_label(dispatcher.registry.phase(name).value))


def _copy_and_report(message: str, no_copy: bool) -> None:
    if no_copy:
        return
    copied, reason = copy_to_clipboard(message)
    if copied:
        print(f"{success(CHECK)} Copied to clipboard!")
    else:
        print(f"{warning('!')} Could not copy to clipboard{': ' + reason if reason else ''}")


def _generate_commit_flow(args, config: Config, provider: str, model: str | None) -> int:
    is_pipe = not sys.stdout.isatty()

    try:
        changes = GitAnalyzer().get_staged_changes()
    except GitError as e:
        print_error(str(e))
        return 1
    if changes.is_empty:
        print_error("No staged changes. Run 'git add' first.")
        return 1

    processed = DiffProcessor().process(changes)
    if not is_pipe:
        _display_file_list(processed, config.max_file_display)

    prompt = PromptBuilder().build(processed, PromptConfig(
        hint=args.hint,
        forced_type=args.type,
        num_options=max(2, min(args.choose, 4)) if args.choose is not None else 1,
        style=config.style,
        include_body=config.include_body,
        max_subject_length=config.max_subject_length,
    ))

    try:
        dispatcher = build_dispatcher(config, provider, model)
    except (ProviderError, ConfigurationError) as e:
        print_error(str(e))
        return 1

    if not is_pipe:
        names = ', '.join(dispatcher.clients)
        print(f"Analyzing {bold(str(processed.total_files))} files ({info(names)})... ", end='', flush=True)

    started = time.time()
    try:
        with Spinner() if not is_pipe else nullcontext():
            result = asyncio.run(dispatcher.run(
                changes.diff, prompt, files=changes.paths, context=processed.context,
            ))
    except ProviderError as e:
        if not is_pipe:
            print()
        print_error(str(e))
        return 1
    finally:
        dispatcher.close()

    messages = result.messages
    message = messages[0]
    if is_pipe:
        print(message)
        return 0

    print(success("done!") + (dim(" (cached)") if result.from_cache else ""))
    if args.verbose:
        source = "cache" if result.from_cache else f"{result.provider} ({result.reasoning})"
        print(dim(f"  Source: {source}, {time.time() - started:.2f}s, ~{len(prompt) // 4} prompt tokens"))
        _display_breaker_activity(dispatcher)
    if args.choose is not None and len(messages) > 1:
        idx = choose_option(messages)
        if idx is None:
            print(dim("Cancelled."))
            return 0
        message = messages[idx]

    _display_message(message)
    _copy_and_report(message, args.no_copy)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.install_completion:
        return run_install_completion()

    config = load_config()
    provider, model = _resolve_settings(args, config)

    if args.display_config:
        return display_config(config)
    if args.cache_stats:
        return show_cache_stats(config)
    if args.clear_cache:
        return clear_cache(config)
    if args.cleanup_cache:
        return cleanup_cache(config)
    if args.provider_status:
        return show_provider_status(config)

    return _generate_commit_flow(args, config, provider, model)


def cli() -> None:
    sys.exit(main())
