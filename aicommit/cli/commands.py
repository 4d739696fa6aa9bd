"""CLI Commands"""

import asyncio
import os
import sys

from aicommit.config import Config, get_config_path
from aicommit.core import CacheManager, InteractionLog, ProviderPerformanceManager
from aicommit.output import bold, dim, info, print_success


def display_config(config: Config) -> int:
    config_path = get_config_path()

    print(f"\n{bold('Current Configuration')}\n")
    print(f"  {dim('Loaded from:')} {config_path or 'defaults (no .aicmrc found)'}")

    overrides = {k: os.environ[k] for k in ('AIC_PROVIDER', 'AIC_MODEL', 'AIC_TIMEOUT') if os.environ.get(k)}
    if overrides:
        print(f"  {dim('Environment overrides:')}")
        for key, value in overrides.items():
            print(f"    {key}={value}")

    print(f"\n  {bold('Settings:')}")
    for key, value in config.to_dict().items():
        if isinstance(value, bool):
            value = str(value).lower()
        elif isinstance(value, list):
            value = ', '.join(value)
        print(f"    {key + ':':<20} {info(str(value))}")
    if config.model is None:
        print(f"    {'model:':<20} {info('auto')}")

    print(f"\n  {dim('Config locations:')}")
    print("    Local:  .aicmrc (in current directory)")
    print("    Global: ~/.aicmrc\n")
    return 0


def _cache(config: Config) -> CacheManager:
    return CacheManager(max_entries=config.cache_max_entries, ttl=config.cache_ttl)


def show_cache_stats(config: Config) -> int:
    stats = asyncio.run(_cache(config).stats())
    print(f"\n{bold('Response Cache')}\n")
    print(f"  {dim('Directory:')}  {stats.directory or 'unavailable (memory only)'}")
    print(f"  {dim('Entries:')}    {stats.persistent_files}")
    print(f"  {dim('Size:')}       {stats.persistent_bytes / 1024 / 1024:.2f} MB")
    print(f"  {dim('TTL:')}        {config.cache_ttl / 3600:g} h\n")
    return 0


def clear_cache(config: Config) -> int:
    asyncio.run(_cache(config).clear())
    print_success("Cache cleared")
    return 0


def cleanup_cache(config: Config) -> int:
    removed = asyncio.run(_cache(config).cleanup())
    print_success(f"Removed {removed} expired cache entries")
    return 0


def show_provider_status(config: Config, history: InteractionLog | None = None) -> int:
    """Per-provider metrics from the interaction history and current weights.

    Circuit breakers live only as long as one session, so their phase is
    not shown here.
    """
    selector = ProviderPerformanceManager(config.providers, history=history or InteractionLog())

    async def collect():
        await selector.update_provider_weights()
        return [await selector.get_provider_metrics(p) for p in selector.providers]

    print(f"\n{bold('Providers')}\n")
    for metrics in asyncio.run(collect()):
        weights = selector.weights(metrics.provider)
        source = f"{metrics.total_requests} recent calls" if metrics.total_requests else "defaults, no history"
        print(f"  {bold(metrics.provider)} {dim(f'({source})')}")
        print(f"    success rate:  {metrics.success_rate:g}%")
        print(f"    avg response:  {metrics.average_response_time:.1f}s")
        print(f"    avg quality:   {metrics.average_message_quality:g}")
        print(f"    weights:       speed={weights.speed:.2f} reliability={weights.reliability:.2f} quality={weights.quality:.2f}")
        print()
    return 0


def run_install_completion() -> int:
    shell = os.environ.get('SHELL', '')
    line = 'eval "$(register-python-argcomplete aic)"'

    print(f"\n{bold('Tab Completion Setup')}\n")
    if 'zsh' in shell or 'bash' in shell:
        rc_file = '~/.zshrc' if 'zsh' in shell else '~/.bashrc'
        print(f"Add this line to {dim(rc_file)}:\n")
        print(f"  {line}\n")
        print(f"Then run: {dim('source ' + rc_file)}")
    elif sys.platform == 'win32':
        print("For PowerShell, run:\n")
        print("  register-python-argcomplete --shell powershell aic | Out-String | Invoke-Expression")
    else:
        print(f"  {dim('# Bash/Zsh')}")
        print(f"  {line}\n")
        print(f"  {dim('# Fish')}")
        print("  register-python-argcomplete --shell fish aic | source")
    return 0
