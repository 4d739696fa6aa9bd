"""Interaction history - an append-only log of provider calls.

Each call is one JSON line:

    {"timestamp": ..., "provider": ..., "success": ..., "response_time": ..., "response": ...}

Provider scoring reads the most recent records per provider. Unreadable
lines are skipped and I/O errors degrade to "no history".
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path.home() / ".aicommit" / "logs" / "interactions.jsonl"
MAX_STORED_RESPONSE = 2000


@dataclass
class InteractionRecord:
    timestamp: float
    provider: str
    success: bool
    response_time: float
    response: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> 'InteractionRecord':
        return cls(
            timestamp=float(data["timestamp"]),
            provider=str(data["provider"]),
            success=bool(data["success"]),
            response_time=float(data.get("response_time") or 0.0),
            response=str(data.get("response") or ""),
        )


class InteractionLog:
    """JSON-lines store of provider interactions."""

    def __init__(self, path: Path | str | None = None, clock=time.time):
        self.path = Path(path).expanduser() if path else DEFAULT_LOG_PATH
        self._clock = clock

    async def record(self, provider: str, success: bool, response_time: float, response: str = "") -> InteractionRecord:
        if len(response) > MAX_STORED_RESPONSE:
            response = response[:MAX_STORED_RESPONSE] + '...[TRUNCATED]'
        record = InteractionRecord(
            timestamp=self._clock(),
            provider=provider,
            success=success,
            response_time=response_time,
            response=response,
        )
        try:
            await asyncio.to_thread(self._append, json.dumps(asdict(record)))
        except OSError as e:
            logger.warning("Could not write interaction log %s: %s", self.path, e)
        return record

    async def recent(self, provider: str, limit: int = 50) -> list[InteractionRecord]:
        """Up to ``limit`` newest records for ``provider``, oldest first."""
        records = [r for r in await self.read_all() if r.provider == provider]
        return records[-limit:] if limit > 0 else []

    async def read_all(self) -> list[InteractionRecord]:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding='utf-8', errors='replace')
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Could not read interaction log %s: %s", self.path, e)
            return []

        records = []
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                records.append(InteractionRecord.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as e:
                logger.debug("Skipping unreadable interaction record: %s", e)
        return records

    async def prune(self, max_records: int = 5000) -> int:
        """Keep only the newest ``max_records`` records. Returns records dropped."""
        records = await self.read_all()
        dropped = len(records) - max_records
        if dropped <= 0:
            return 0
        lines = ''.join(json.dumps(asdict(r)) + '\n' for r in records[dropped:])
        try:
            await asyncio.to_thread(self.path.write_text, lines, encoding='utf-8')
        except OSError as e:
            logger.warning("Could not prune interaction log %s: %s", self.path, e)
            return 0
        return dropped

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(line + '\n')
