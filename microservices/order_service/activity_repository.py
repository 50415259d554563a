"""
Activity Repository

Append-only activity log, one JSON array file per category. Appends never
fail the caller: errors are logged and swallowed. When a category file
reaches the configured entry cap it is renamed to a timestamped archive and
a fresh file is started; archives stay readable through query().
"""

import asyncio
import logging
import os
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic import ValidationError

from .models import ActivityCategory, ActivityEntry
from .order_repository import read_json_array, write_json_atomic

logger = logging.getLogger(__name__)

LOG_FILES: Dict[ActivityCategory, str] = {
    ActivityCategory.ORDER: "order_logs",
    ActivityCategory.PAYMENT: "payment_logs",
    ActivityCategory.SHIPMENT: "shiprocket_logs",
}


class ActivityRepository:
    """Implements ActivityRepositoryProtocol on flat JSON files"""

    def __init__(self, data_dir: str, max_entries: int = 5000):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.max_entries = max_entries
        self._locks = {category: asyncio.Lock() for category in ActivityCategory}

        for category in ActivityCategory:
            path = self._path(category)
            if not path.exists():
                write_json_atomic(path, [])

    def _path(self, category: ActivityCategory) -> Path:
        return self.data_dir / f"{LOG_FILES[category]}.json"

    def _archives(self, category: ActivityCategory) -> List[Path]:
        # Timestamp suffix sorts chronologically
        return sorted(self.data_dir.glob(f"{LOG_FILES[category]}.*.json"))

    def _archive_path(self, category: ActivityCategory, when: datetime) -> Path:
        return self.data_dir / f"{LOG_FILES[category]}.{when.strftime('%Y%m%dT%H%M%S%f')}.json"

    def _rotate(self, category: ActivityCategory) -> None:
        now = datetime.now(timezone.utc)
        archive = self._archive_path(category, now)
        while archive.exists():
            now += timedelta(microseconds=1)
            archive = self._archive_path(category, now)
        os.replace(self._path(category), archive)
        write_json_atomic(self._path(category), [])
        logger.info(f"Rotated {category.value} activity log to {archive.name}")

    async def append(
        self,
        category: ActivityCategory,
        event_type: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[ActivityEntry]:
        """Record an entry; returns None if it could not be written"""
        entry = ActivityEntry(
            id=str(uuid.uuid4()),
            category=category,
            type=event_type,
            data=data or {},
        )
        try:
            async with self._locks[category]:
                path = self._path(category)
                try:
                    logs = await asyncio.to_thread(read_json_array, path)
                except ValueError as e:
                    logger.error(f"Unreadable {path.name}, starting a new file: {e}")
                    await asyncio.to_thread(self._rotate, category)
                    logs = []

                if len(logs) >= self.max_entries:
                    await asyncio.to_thread(self._rotate, category)
                    logs = []

                logs.append(entry.model_dump(mode="json"))
                await asyncio.to_thread(write_json_atomic, path, logs)
            return entry
        except Exception as e:
            logger.error(f"Error writing {category.value} activity {event_type}: {e}")
            return None

    def _read_file(self, path: Path) -> Iterator[ActivityEntry]:
        try:
            records = read_json_array(path)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading activity log {path.name}: {e}")
            return
        for record in records:
            try:
                yield ActivityEntry.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping malformed activity entry in {path.name}: {e}")

    def query(
        self,
        category: ActivityCategory,
        predicate: Optional[Callable[[ActivityEntry], bool]] = None
    ) -> Iterator[ActivityEntry]:
        """Lazily yield entries in stored order, archives first"""
        for path in [*self._archives(category), self._path(category)]:
            for entry in self._read_file(path):
                if predicate is None or predicate(entry):
                    yield entry

    def recent(self, category: ActivityCategory, limit: int = 50) -> List[ActivityEntry]:
        """Last `limit` entries of a category, oldest first"""
        return list(deque(self.query(category), maxlen=limit))
