"""
Tests for CacheManager fingerprinting, storage tiers and expiry.

Run with:
    pytest tests/test_cache_manager.py -v
"""

import json

import pytest

from aicommit.config import ConfigurationError
from aicommit.core.cache_manager import CacheEntry, CacheManager, changed_paths


CODE = (
    "def load_settings(path):",
    "    with open(path) as handle:",
    "        return json.load(handle)",
)


@pytest.fixture
def cache(tmp_path, clock):
    return CacheManager(cache_dir=tmp_path / "cache", max_entries=3, ttl=3600, clock=clock)


# ---------------------------------------------------------------------------
# Fingerprinting
# ---------------------------------------------------------------------------

class TestGenerateKey:

    def test_key_is_sha256_hex(self, cache, make_diff):
        key = cache.generate_key(make_diff(added=CODE))
        assert len(key) == 64
        assert int(key, 16) >= 0

    def test_same_change_same_key(self, cache, make_diff):
        diff = make_diff(added=CODE)
        assert cache.generate_key(diff) == cache.generate_key(diff)

    def test_ignores_blob_hashes_and_hunk_offsets(self, cache, make_diff):
        first = make_diff(added=CODE, index="aaaaaaa..bbbbbbb", hunk="@@ -10,6 +10,9 @@")
        moved = make_diff(added=CODE, index="ccccccc..ddddddd", hunk="@@ -240,3 +240,6 @@ class Loader:")
        assert cache.generate_key(first) == cache.generate_key(moved)

    def test_ignores_context_lines(self, cache, make_diff):
        first = make_diff(added=CODE, context=("import json",))
        second = make_diff(added=CODE, context=("import os", "import sys"))
        assert cache.generate_key(first) == cache.generate_key(second)

    def test_ignores_comments_and_trivial_lines(self, cache, make_diff):
        plain = make_diff(added=CODE)
        noisy = make_diff(added=("# load settings from disk", *CODE, "}", "// note"))
        assert cache.generate_key(plain) == cache.generate_key(noisy)

    def test_different_code_different_key(self, cache, make_diff):
        other = make_diff(added=("def save_settings(path, data):", "    path.write_text(data)"))
        assert cache.generate_key(make_diff(added=CODE)) != cache.generate_key(other)

    def test_same_code_different_file_different_key(self, cache, make_diff):
        assert (cache.generate_key(make_diff(path="src/a.py", added=CODE))
                != cache.generate_key(make_diff(path="src/b.py", added=CODE)))

    def test_explicit_files_override_parsed_paths(self, cache, make_diff):
        diff = make_diff(path="src/a.py", added=CODE)
        assert cache.generate_key(diff, files=["src/b.py"]) == cache.generate_key(
            make_diff(path="src/b.py", added=CODE))
        assert cache.generate_key(diff, files=["x", "y"]) == cache.generate_key(diff, files=["y", "x", "y"])

    def test_changed_paths(self, make_diff):
        diff = make_diff(path="src/b.py") + "\n" + make_diff(path="src/a.py")
        assert changed_paths(diff) == ["src/a.py", "src/b.py"]

    def test_extract_code_changes_lowercases(self, cache, make_diff):
        changes = cache.extract_code_changes(make_diff(added=("RETRY_LIMIT = 3",), removed=("RETRY_LIMIT = 5",)))
        assert changes == ["retry_limit = 5", "retry_limit = 3"]


class TestSemanticSimilarity:

    def test_identical_changes_are_similar(self, cache, make_diff):
        assert cache.validate_semantic_similarity(make_diff(added=CODE), make_diff(path="other.py", added=CODE))

    def test_near_identical_changes_are_similar(self, cache, make_diff):
        base = [f"value_{i} = compute({i})" for i in range(9)]
        extended = base + ["value_9 = compute(9)"]
        assert cache.validate_semantic_similarity(make_diff(added=base), make_diff(added=extended))

    def test_unrelated_changes_are_not_similar(self, cache, make_diff):
        other = make_diff(added=("raise ValueError('bad input')", "return None"))
        assert not cache.validate_semantic_similarity(make_diff(added=CODE), other)

    def test_empty_change_is_not_similar(self, cache, make_diff):
        assert not cache.validate_semantic_similarity(make_diff(added=CODE), make_diff(added=("x",)))

    def test_bad_input_is_not_similar(self, cache, make_diff):
        assert not cache.validate_semantic_similarity(make_diff(added=CODE), None)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class TestStorage:

    def test_invalid_settings_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            CacheManager(cache_dir=tmp_path, max_entries=0)
        with pytest.raises(ConfigurationError):
            CacheManager(cache_dir=tmp_path, ttl=-1)

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, cache, make_diff):
        diff = make_diff(added=CODE)
        assert await cache.get(diff) is None

        await cache.set(diff, ["feat(config): load settings from json"])
        assert await cache.get(diff) == ["feat(config): load settings from json"]

        stats = await cache.stats()
        assert (stats.hits, stats.misses) == (1, 1)
        assert stats.hit_rate == 50.0

    @pytest.mark.asyncio
    async def test_returned_messages_are_a_copy(self, cache, make_diff):
        diff = make_diff(added=CODE)
        await cache.set(diff, ["feat: a"])
        (await cache.get(diff)).append("mutated")
        assert await cache.get(diff) == ["feat: a"]

    @pytest.mark.asyncio
    async def test_entry_written_to_disk(self, cache, make_diff):
        diff = make_diff(added=CODE)
        await cache.set(diff, ["feat: a", "feat: b"])

        path = cache.cache_dir / f"{cache.generate_key(diff)}.json"
        data = json.loads(path.read_text())
        assert data["messages"] == ["feat: a", "feat: b"]
        assert data["diff"] == diff
        assert isinstance(data["timestamp"], float)

    @pytest.mark.asyncio
    async def test_persistent_tier_survives_restart(self, tmp_path, clock, make_diff):
        diff = make_diff(added=CODE)
        await CacheManager(cache_dir=tmp_path, clock=clock).set(diff, ["fix: persisted"])

        fresh = CacheManager(cache_dir=tmp_path, clock=clock)
        assert await fresh.get(diff) == ["fix: persisted"]
        assert fresh.generate_key(diff) in fresh

    @pytest.mark.asyncio
    async def test_expired_entry_is_miss_and_removed(self, cache, clock, make_diff):
        diff = make_diff(added=CODE)
        await cache.set(diff, ["feat: a"])
        path = cache.cache_dir / f"{cache.generate_key(diff)}.json"

        clock.advance(3599)
        assert await cache.get(diff) == ["feat: a"]

        clock.advance(1)
        assert await cache.get(diff) is None
        assert not path.exists()
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_lru_evicts_oldest(self, cache, make_diff):
        diffs = [make_diff(path=f"src/m{i}.py", added=CODE) for i in range(4)]
        for i, diff in enumerate(diffs):
            await cache.set(diff, [f"feat: {i}"])

        assert len(cache) == 3
        assert cache.generate_key(diffs[0]) not in cache
        assert all(cache.generate_key(d) in cache for d in diffs[1:])

    @pytest.mark.asyncio
    async def test_lru_recent_lookup_protects_entry(self, cache, make_diff):
        diffs = [make_diff(path=f"src/m{i}.py", added=CODE) for i in range(4)]
        for diff in diffs[:3]:
            await cache.set(diff, ["feat: x"])
        await cache.get(diffs[0])
        await cache.set(diffs[3], ["feat: y"])

        assert cache.generate_key(diffs[0]) in cache
        assert cache.generate_key(diffs[1]) not in cache

    @pytest.mark.asyncio
    async def test_corrupt_file_is_miss_and_removed(self, cache, make_diff):
        diff = make_diff(added=CODE)
        path = cache.cache_dir / f"{cache.generate_key(diff)}.json"
        path.write_text("{not json")

        assert await cache.get(diff) is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_wrong_shape_file_is_miss(self, cache, make_diff):
        diff = make_diff(added=CODE)
        path = cache.cache_dir / f"{cache.generate_key(diff)}.json"
        path.write_text(json.dumps({"messages": "not a list", "timestamp": 1}))

        assert await cache.get(diff) is None

    @pytest.mark.asyncio
    async def test_memory_only_when_directory_unusable(self, tmp_path, make_diff):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        cache = CacheManager(cache_dir=blocker / "cache")
        assert cache.persistent is False

        diff = make_diff(added=CODE)
        await cache.set(diff, ["feat: memory"])
        assert await cache.get(diff) == ["feat: memory"]
        assert (await cache.stats()).directory is None

    @pytest.mark.asyncio
    async def test_long_diff_truncated_when_stored(self, cache, make_diff):
        diff = make_diff(added=[f"line_{i} = {i} * factor" for i in range(200)])
        await cache.set(diff, ["feat: big"])
        entry = CacheEntry.from_json("k", json.loads(
            (cache.cache_dir / f"{cache.generate_key(diff)}.json").read_text()))
        assert len(entry.diff) == 2003
        assert entry.diff.endswith("...")


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

class TestMaintenance:

    @pytest.mark.asyncio
    async def test_cleanup_removes_expired_and_corrupt(self, cache, clock, make_diff):
        old = make_diff(path="old.py", added=CODE)
        await cache.set(old, ["feat: old"])
        clock.advance(3000)
        fresh = make_diff(path="fresh.py", added=CODE)
        await cache.set(fresh, ["feat: fresh"])
        (cache.cache_dir / "garbage.json").write_text("[]")
        clock.advance(700)

        assert await cache.cleanup() == 2
        assert await cache.get(fresh) == ["feat: fresh"]
        assert cache.generate_key(old) not in cache

    @pytest.mark.asyncio
    async def test_clear_removes_everything(self, cache, make_diff):
        await cache.set(make_diff(added=CODE), ["feat: a"])
        await cache.clear()

        assert len(cache) == 0
        assert list(cache.cache_dir.glob("*.json")) == []

    @pytest.mark.asyncio
    async def test_find_similar_is_separate_from_get(self, cache, make_diff):
        base = [f"value_{i} = compute({i})" for i in range(9)]
        await cache.set(make_diff(added=base), ["refactor: compute values"])
        near = make_diff(added=base + ["value_9 = compute(9)"])

        assert await cache.get(near) is None
        assert await cache.find_similar(near) == ["refactor: compute values"]

    @pytest.mark.asyncio
    async def test_find_similar_reads_persistent_tier(self, tmp_path, clock, make_diff):
        await CacheManager(cache_dir=tmp_path, clock=clock).set(make_diff(added=CODE), ["feat: stored"])

        fresh = CacheManager(cache_dir=tmp_path, clock=clock)
        assert await fresh.find_similar(make_diff(path="elsewhere.py", added=CODE)) == ["feat: stored"]
