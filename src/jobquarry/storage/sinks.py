"""
Dataset sinks: where assembled JobRecords are persisted.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import aiofiles
import structlog

from jobquarry.models import JobRecord

logger = structlog.get_logger(__name__)


@runtime_checkable
class DatasetSink(Protocol):
    """Persistence target for assembled records."""

    async def write(self, record: JobRecord) -> None:
        """Persist one record."""
        ...

    async def close(self) -> None:
        """Flush and release resources."""
        ...


class JsonlDatasetSink:
    """Appends one JSON object per line to a dataset file."""

    def __init__(self, path: Path | str, *, overwrite: bool = False) -> None:
        self.path = Path(path)
        self.overwrite = overwrite
        self._file: Optional[Any] = None
        self._lock = asyncio.Lock()
        self.written = 0

    async def _ensure_open(self) -> Any:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = await aiofiles.open(self.path, "w" if self.overwrite else "a", encoding="utf-8")
            logger.info("Opened dataset file", path=str(self.path))
        return self._file

    async def write(self, record: JobRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False)
        async with self._lock:
            handle = await self._ensure_open()
            await handle.write(line + "\n")
            await handle.flush()
            self.written += 1

    async def close(self) -> None:
        async with self._lock:
            if self._file is not None:
                await self._file.close()
                self._file = None
                logger.info("Closed dataset file", path=str(self.path), written=self.written)


class MemorySink:
    """Keeps records in a list; used by tests and embedding callers."""

    def __init__(self) -> None:
        self.records: List[JobRecord] = []
        self.closed = False

    async def write(self, record: JobRecord) -> None:
        self.records.append(record)

    async def close(self) -> None:
        self.closed = True

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.records]
