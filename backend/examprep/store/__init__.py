"""Attempt store - append-only exam history kept in a single named blob."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from ..models import ExamAttempt

logger = logging.getLogger(__name__)


# ============ BLOB BACK-ENDS ============

class BlobStore(ABC):
    """Key/value store of raw strings. No transactions, no concurrency control."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...


class MemoryBlobStore(BlobStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.blobs: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    async def set(self, key: str, value: str) -> None:
        self.blobs[key] = value


class FileBlobStore(BlobStore):
    """One `<key>.json` file per blob inside `directory`."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self._path(key).write_text, value, encoding="utf-8")


class MongoBlobStore(BlobStore):
    """Blobs kept as documents `{key, value, updated_at}` in one collection."""

    COLLECTION = "blobs"

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.col = db[self.COLLECTION]

    async def get(self, key: str) -> Optional[str]:
        doc = await self.col.find_one({"key": key}, {"_id": 0})
        return doc["value"] if doc else None

    async def set(self, key: str, value: str) -> None:
        await self.col.update_one(
            {"key": key},
            {"$set": {"key": key, "value": value, "updated_at": datetime.now(timezone.utc)}},
            upsert=True
        )


# ============ ATTEMPT STORE ============

class AttemptStore:
    """Handles reading and appending exam attempts."""

    def __init__(self, blobs: BlobStore, key: str = "igcse_attempts"):
        self.blobs = blobs
        self.key = key
        # One read-push-write at a time within this process
        self._append_lock = asyncio.Lock()

    async def read_all(self) -> List[ExamAttempt]:
        """
        Read every stored attempt, oldest first.

        Returns an empty list when the blob is absent or unparseable.
        Individual malformed records are skipped.
        """
        raw = await self.blobs.get(self.key)
        if not raw:
            return []

        try:
            records: Any = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"⚠️  Attempt history '{self.key}' is not valid JSON, treating as empty")
            return []
        if not isinstance(records, list):
            return []

        attempts = []
        for record in records:
            try:
                attempts.append(ExamAttempt.model_validate(record))
            except ValidationError:
                logger.warning(f"⚠️  Skipping malformed attempt record: {record!r}")
        return attempts

    async def append_one(self, attempt: ExamAttempt) -> ExamAttempt:
        """Append one attempt: read-all, push, write-all."""
        async with self._append_lock:
            attempts = await self.read_all()
            attempts.append(attempt)
            payload = [a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in attempts]
            await self.blobs.set(self.key, json.dumps(payload))
        logger.info(f"✅ Recorded attempt {attempt.id}: {attempt.score}/{attempt.max_score} ({attempt.subject.value})")
        return attempt

    async def recent(self, limit: int) -> List[ExamAttempt]:
        attempts = await self.read_all()
        return attempts[-limit:] if limit > 0 else []


# Global store instance (initialized in main app)
_store_instance: Optional[AttemptStore] = None

def init_attempt_store(blobs: BlobStore, key: str = "igcse_attempts") -> AttemptStore:
    """Initialize global attempt store instance."""
    global _store_instance
    _store_instance = AttemptStore(blobs, key)
    return _store_instance

def get_attempt_store() -> AttemptStore:
    """Get global attempt store instance."""
    if _store_instance is None:
        raise RuntimeError("Attempt store not initialized. Call init_attempt_store() first.")
    return _store_instance
