"""Cache Manager - content-addressed cache of generated commit messages.

Keys are fingerprints of what a diff actually changes: the significant
added/removed lines plus the set of touched files. Blob hashes, hunk
offsets and context lines do not affect the key, so re-staging the same
change elsewhere in a file still hits the cache.

Two tiers:
    fast        bounded in-process LRU map
    persistent  one JSON file per key under the cache directory

Entries expire after ``ttl`` seconds in both tiers. Any persistent-tier I/O
error degrades to a miss (reads) or to memory-only storage (writes).
"""

import asyncio
import hashlib
import json
import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path

from aicommit.config import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".aicommit" / "cache"
DEFAULT_TTL = 24 * 60 * 60
DEFAULT_MAX_ENTRIES = 100
MAX_STORED_DIFF = 2000

COMMENT_PREFIXES = ('//', '/*', '*/', '*', '#')
MIN_SIGNIFICANT_CHARS = 4

_GIT_HEADER_RE = re.compile(r'^diff --git a/(.+?) b/(.+)$')
_NEW_FILE_RE = re.compile(r'^\+\+\+ b/(.+)$')
_OLD_FILE_RE = re.compile(r'^--- a/(.+)$')


def _significant_lines(diff: str) -> list[str]:
    """Added/removed code lines with markers stripped, in diff order."""
    lines = []
    for line in diff.split('\n'):
        if not line or line[0] not in '+-':
            continue
        if line.startswith('+++ ') or line.startswith('--- '):
            continue
        content = line[1:].strip()
        if len(content) < MIN_SIGNIFICANT_CHARS:
            continue
        if content.startswith(COMMENT_PREFIXES):
            continue
        lines.append(content)
    return lines


def changed_paths(diff: str) -> list[str]:
    """Sorted set of file paths touched by a unified diff."""
    paths = set()
    for line in diff.split('\n'):
        match = _GIT_HEADER_RE.match(line)
        if match:
            paths.add(match.group(2).strip())
            continue
        match = _NEW_FILE_RE.match(line) or _OLD_FILE_RE.match(line)
        if match:
            paths.add(match.group(1).strip())
    return sorted(paths)


def _short_md5(text: str) -> str:
    return hashlib.md5(text.encode('utf-8')).hexdigest()[:16]


@dataclass
class CacheEntry:
    key: str
    messages: list[str]
    created_at: float
    diff: str = ""

    def to_json(self) -> dict:
        return {"messages": self.messages, "timestamp": self.created_at, "diff": self.diff}

    @classmethod
    def from_json(cls, key: str, data: dict) -> 'CacheEntry':
        messages = data["messages"]
        created_at = data["timestamp"]
        if not isinstance(messages, list) or not all(isinstance(m, str) for m in messages):
            raise ValueError("messages must be a list of strings")
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            raise ValueError("timestamp must be a number")
        return cls(key=key, messages=messages, created_at=float(created_at), diff=str(data.get("diff", "")))


@dataclass
class CacheStats:
    keys: int
    hits: int
    misses: int
    persistent_files: int
    persistent_bytes: int
    directory: str | None

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups * 100 if lookups else 0.0


class CacheManager:
    """Two-tier fingerprint cache for generated messages."""

    def __init__(
        self,
        cache_dir: Path | str | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: float = DEFAULT_TTL,
        clock=time.time,
    ):
        if isinstance(max_entries, bool) or not isinstance(max_entries, int) or max_entries <= 0:
            raise ConfigurationError(f"max_entries must be a positive integer, got {max_entries!r}")
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)) or ttl <= 0:
            raise ConfigurationError(f"ttl must be a positive number, got {ttl!r}")

        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._memory: OrderedDict[str, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

        self.cache_dir = Path(cache_dir).expanduser() if cache_dir else DEFAULT_CACHE_DIR
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.persistent = True
        except OSError as e:
            logger.warning("Cache directory %s unavailable, caching in memory only: %s", self.cache_dir, e)
            self.persistent = False

    # ------------------------------------------------------------------
    # Fingerprinting
    # ------------------------------------------------------------------

    def semantic_fingerprint(self, diff: str) -> str:
        return _short_md5('|'.join(_significant_lines(diff)))

    def structural_fingerprint(self, diff: str, files: list[str] | None = None) -> str:
        paths = sorted(set(files)) if files is not None else changed_paths(diff)
        return _short_md5(','.join(paths))

    def generate_key(self, diff: str, files: list[str] | None = None) -> str:
        combined = f"{self.semantic_fingerprint(diff)}:{self.structural_fingerprint(diff, files)}"
        return hashlib.sha256(combined.encode('utf-8')).hexdigest()

    def extract_code_changes(self, diff: str) -> list[str]:
        return [line.lower() for line in _significant_lines(diff)]

    def validate_semantic_similarity(self, diff_a: str, diff_b: str, threshold: float = 0.7) -> bool:
        """Whether two diffs make near-identical code changes.

        Exact semantic fingerprint match, or Jaccard similarity of the
        significant changed lines at or above ``threshold``.
        """
        try:
            if self.semantic_fingerprint(diff_a) == self.semantic_fingerprint(diff_b):
                return True
            changes_a = set(self.extract_code_changes(diff_a))
            changes_b = set(self.extract_code_changes(diff_b))
            if not changes_a or not changes_b:
                return False
            return len(changes_a & changes_b) / len(changes_a | changes_b) >= threshold
        except (TypeError, AttributeError) as e:
            logger.warning("Semantic similarity check failed: %s", e)
            return False

    # ------------------------------------------------------------------
    # Lookup and storage
    # ------------------------------------------------------------------

    async def get(self, diff: str, files: list[str] | None = None) -> list[str] | None:
        """Cached messages for ``diff``, or None on miss or expiry."""
        key = self.generate_key(diff, files)

        entry = self._memory.get(key)
        if entry is not None:
            if self._is_expired(entry):
                await self._evict(key)
                self.misses += 1
                return None
            self._memory.move_to_end(key)
            self.hits += 1
            return list(entry.messages)

        entry = await self._read_entry(key)
        if entry is None:
            self.misses += 1
            return None
        if self._is_expired(entry):
            await self._evict(key)
            self.misses += 1
            return None

        self._remember(entry)
        self.hits += 1
        return list(entry.messages)

    async def set(self, diff: str, messages: list[str], files: list[str] | None = None) -> None:
        key = self.generate_key(diff, files)
        entry = CacheEntry(
            key=key,
            messages=list(messages),
            created_at=self._clock(),
            diff=self.truncate_diff(diff),
        )
        self._remember(entry)
        await self._write_entry(entry)

    async def find_similar(self, diff: str, threshold: float = 0.7) -> list[str] | None:
        """Messages of any unexpired entry whose stored diff is near-identical.

        Opt-in only: matching on similarity can serve a message written for a
        different change, so ``get`` never falls back to this.
        """
        for entry in list(self._memory.values()):
            if not self._is_expired(entry) and self.validate_semantic_similarity(diff, entry.diff, threshold):
                return list(entry.messages)

        for path in await self._list_files():
            entry = await self._read_entry(path.stem)
            if entry and not self._is_expired(entry) and self.validate_semantic_similarity(diff, entry.diff, threshold):
                self._remember(entry)
                return list(entry.messages)
        return None

    async def cleanup(self) -> int:
        """Remove expired and unreadable entries. Returns files removed."""
        for key in [k for k, e in self._memory.items() if self._is_expired(e)]:
            del self._memory[key]

        removed = 0
        for path in await self._list_files():
            try:
                data = json.loads(await asyncio.to_thread(path.read_bytes))
                expired = self._is_expired(CacheEntry.from_json(path.stem, data))
            except (ValueError, KeyError, TypeError, AttributeError):
                expired = True
            except OSError as e:
                logger.warning("Could not read cache file %s: %s", path, e)
                continue
            if expired and await self._unlink(path):
                removed += 1
        return removed

    async def clear(self) -> None:
        self._memory.clear()
        for path in await self._list_files():
            await self._unlink(path)

    async def stats(self) -> CacheStats:
        files = await self._list_files()
        size = 0
        for path in files:
            try:
                size += path.stat().st_size
            except OSError:
                pass
        return CacheStats(
            keys=len(self._memory),
            hits=self.hits,
            misses=self.misses,
            persistent_files=len(files),
            persistent_bytes=size,
            directory=str(self.cache_dir) if self.persistent else None,
        )

    @staticmethod
    def truncate_diff(diff: str) -> str:
        return diff[:MAX_STORED_DIFF] + '...' if len(diff) > MAX_STORED_DIFF else diff

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, key: str) -> bool:
        return key in self._memory

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at >= self.ttl

    def _remember(self, entry: CacheEntry) -> None:
        # insert and evict in one step so the bound is never left exceeded
        self._memory[entry.key] = entry
        self._memory.move_to_end(entry.key)
        while len(self._memory) > self.max_entries:
            evicted, _ = self._memory.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted[:12])

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    async def _evict(self, key: str) -> None:
        self._memory.pop(key, None)
        if self.persistent:
            await self._unlink(self._path(key))

    async def _read_entry(self, key: str) -> CacheEntry | None:
        if not self.persistent:
            return None
        path = self._path(key)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read cache file %s: %s", path, e)
            return None

        try:
            return CacheEntry.from_json(key, json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Removing corrupt cache file %s: %s", path, e)
            await self._unlink(path)
            return None

    async def _write_entry(self, entry: CacheEntry) -> None:
        if not self.persistent:
            return
        path = self._path(entry.key)
        try:
            await asyncio.to_thread(path.write_text, json.dumps(entry.to_json()), encoding='utf-8')
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write cache file %s, keeping entry in memory only: %s", path, e)

    async def _unlink(self, path: Path) -> bool:
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
            return True
        except OSError as e:
            logger.warning("Could not remove cache file %s: %s", path, e)
            return False

    async def _list_files(self) -> list[Path]:
        if not self.persistent:
            return []
        try:
            return await asyncio.to_thread(lambda: sorted(self.cache_dir.glob('*.json')))
        except OSError as e:
            logger.warning("Could not list cache directory %s: %s", self.cache_dir, e)
            return []
