"""
Sprint Record Store

Durable storage for the single JSON document holding every sprint and the
team configuration. Every mutation reads the whole document, changes it in
memory, validates it and writes it back whole.

Writes back up the previous file, write to a temp sibling, verify it by
re-reading, then atomically replace the live file. Reads that find an
unreadable, corrupted or invalid document quarantine it and, when recovery
is enabled, fall back to the default document.
"""

import asyncio
import copy
import json
import logging
import os
import re
import shutil
import time
from pathlib import Path
from typing import Optional, Union

from .errors import (
    DataCorruptionError,
    DataValidationError,
    DuplicateSprintError,
    SprintNotFoundError,
    SprintTrackerError,
    handle_data_corruption_error,
    handle_file_system_error,
    log_error,
    with_error_handling,
)
from .models import AppConfig, AppDocument, Sprint
from .validation import is_data_corrupted, validate_data_integrity, validate_sprint

logger = logging.getLogger(__name__)


DEFAULT_DATA_FILE = "sprints.json"
DEFAULT_BACKUP_RETENTION = 10


class RecordStore:
    """
    Async CRUD over one JSON document.

    Usage:
        store = RecordStore(data_dir="data", default_config=AppConfig())
        await store.add_sprint(sprint)
        sprints = await store.read_sprints()

    Writes through one store instance are serialized; separate processes
    sharing a data file still race (last writer wins).
    """

    def __init__(
        self,
        data_dir: Union[str, Path] = "data",
        default_config: Optional[AppConfig] = None,
        file_name: str = DEFAULT_DATA_FILE,
        backup_retention: Optional[int] = DEFAULT_BACKUP_RETENTION,
        recover_corrupted: bool = False
    ):
        """
        Args:
            data_dir: Directory holding the data file and its backups
            default_config: Configuration used when no usable document exists
            file_name: Data file name inside data_dir
            backup_retention: Pre-write backups to keep (None keeps all)
            recover_corrupted: Fall back to the default document when the stored
                one cannot be used; off by default, so the read raises instead
        """
        self.data_dir = Path(data_dir)
        self.data_file = self.data_dir / file_name
        self.default_config = default_config or AppConfig()
        self.backup_retention = backup_retention
        self.recover_corrupted = recover_corrupted
        self._write_lock = asyncio.Lock()

    # Paths

    def _sidecar_path(self, kind: str) -> Path:
        """Next free sprints.<kind>.<epoch-ms>.json path."""
        stamp = int(time.time() * 1000)
        while True:
            path = self.data_file.with_name(
                f"{self.data_file.stem}.{kind}.{stamp}{self.data_file.suffix}"
            )
            if not path.exists():
                return path
            stamp += 1

    def _sidecar_files(self, kind: str) -> list[Path]:
        """Existing sidecar files of one kind, oldest first."""
        pattern = re.compile(
            rf"^{re.escape(self.data_file.stem)}\.{kind}\.(\d+){re.escape(self.data_file.suffix)}$"
        )
        found = []
        for path in self.data_dir.glob(f"{self.data_file.stem}.{kind}.*"):
            match = pattern.match(path.name)
            if match:
                found.append((int(match.group(1)), path))
        return [path for _, path in sorted(found)]

    def list_backups(self) -> list[Path]:
        return self._sidecar_files("backup")

    def list_quarantined(self) -> list[Path]:
        return self._sidecar_files("corrupted")

    def _default_document(self) -> AppDocument:
        return AppDocument(sprints=[], config=copy.deepcopy(self.default_config))

    async def _ensure_data_directory(self) -> None:
        await asyncio.to_thread(self.data_dir.mkdir, parents=True, exist_ok=True)

    # Read path

    async def _quarantine(self) -> Optional[Path]:
        """Best-effort copy of the current data file aside."""
        target = self._sidecar_path("corrupted")
        try:
            await asyncio.to_thread(shutil.copyfile, self.data_file, target)
        except OSError as e:
            logger.warning("Could not quarantine %s: %s", self.data_file, e)
            return None
        logger.warning("Unusable data file copied to %s", target)
        return target

    async def _recover(self, error: SprintTrackerError) -> AppDocument:
        """Quarantine the stored document, then fall back or raise."""
        quarantined = await self._quarantine()

        if not self.recover_corrupted:
            raise error

        logger.warning(
            "Falling back to default data for %s (original kept at %s): %s",
            self.data_file, quarantined, error
        )
        return self._default_document()

    async def read_sprint_data(self) -> AppDocument:
        """
        Load the document.

        A missing file is a first run and yields the default document
        without writing anything.
        """
        await self._ensure_data_directory()

        try:
            content = await asyncio.to_thread(self.data_file.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.info("No existing data file at %s, using default data", self.data_file)
            return self._default_document()
        except (OSError, UnicodeDecodeError) as e:
            if isinstance(e, OSError):
                log_error(handle_file_system_error(e, "read_sprint_data"))
            return await self._recover(DataCorruptionError(f"Could not read data file: {e}"))

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            log_error(handle_data_corruption_error(
                {"file": str(self.data_file), "reason": str(e)}, "read_sprint_data"
            ))
            return await self._recover(DataCorruptionError(f"Data file is not valid JSON: {e}"))

        if is_data_corrupted(data):
            log_error(handle_data_corruption_error(
                {"file": str(self.data_file), "data": type(data).__name__}, "read_sprint_data"
            ))
            return await self._recover(DataCorruptionError("Data file structure is corrupted"))

        validation = validate_data_integrity(data)
        if not validation.is_valid:
            logger.warning("Stored data failed validation: %s", validation.errors)
            return await self._recover(
                DataValidationError(validation, prefix="Stored data failed validation")
            )

        return AppDocument.from_dict(data)

    # Write path

    async def _backup_existing(self) -> Optional[Path]:
        """Copy the live file aside before it is replaced; absence is fine."""
        if not self.data_file.exists():
            return None

        target = self._sidecar_path("backup")
        try:
            await asyncio.to_thread(shutil.copyfile, self.data_file, target)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not back up %s: %s", self.data_file, e)
            return None

        logger.debug("Backup created: %s", target)
        return target

    def _write_verified(self, content: str) -> None:
        """Write to a temp sibling, verify by re-reading, then swap it in."""
        temp_file = self.data_file.with_name(f".{self.data_file.name}.{os.getpid()}.tmp")
        try:
            temp_file.write_text(content, encoding="utf-8")

            try:
                written = json.loads(temp_file.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise DataCorruptionError(f"Data corruption detected after write operation: {e}")
            if is_data_corrupted(written):
                raise DataCorruptionError("Data corruption detected after write operation")

            os.replace(temp_file, self.data_file)
        finally:
            temp_file.unlink(missing_ok=True)

    async def _prune_backups(self) -> None:
        if self.backup_retention is None:
            return

        backups = self.list_backups()
        excess = len(backups) - max(self.backup_retention, 0)
        for path in backups[:max(excess, 0)]:
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                continue
            logger.debug("Pruned backup %s", path)

    async def _write_document(self, document: AppDocument) -> None:
        """Validate and persist; callers must hold the write lock."""
        data = document.to_dict()

        validation = validate_data_integrity(data)
        if not validation.is_valid:
            raise DataValidationError(validation)

        content = json.dumps(data, indent=2, ensure_ascii=False)

        await self._ensure_data_directory()
        await self._backup_existing()
        try:
            await asyncio.to_thread(self._write_verified, content)
        except OSError as e:
            log_error(handle_file_system_error(e, "write_sprint_data"))
            raise
        await self._prune_backups()

        logger.info("Saved %d sprint(s) to %s", len(document.sprints), self.data_file)

    async def write_sprint_data(self, document: AppDocument) -> None:
        """
        Replace the whole document.

        Raises:
            DataValidationError: The document is invalid; nothing was written
            DataCorruptionError: The written file did not verify; the live file is unchanged
            OSError: The file could not be written
        """
        async with self._write_lock:
            await self._write_document(document)

    # Convenience accessors

    async def read_sprints(self) -> list[Sprint]:
        document = await self.read_sprint_data()
        return document.sprints

    async def read_config(self) -> AppConfig:
        document = await self.read_sprint_data()
        return document.config

    async def get_sprint(self, sprint_id: str) -> Optional[Sprint]:
        document = await self.read_sprint_data()
        return document.get_sprint(sprint_id)

    async def write_sprints(self, sprints: list[Sprint]) -> None:
        """Replace every sprint, keeping the config."""
        async with self._write_lock:
            document = await self.read_sprint_data()
            document.sprints = list(sprints)
            await self._write_document(document)

    async def write_config(self, config: AppConfig) -> None:
        """Replace the config, keeping every sprint."""
        async with self._write_lock:
            document = await self.read_sprint_data()
            document.config = config
            await self._write_document(document)

    async def add_sprint(self, sprint: Sprint) -> None:
        async with self._write_lock:
            document = await self.read_sprint_data()
            if document.get_sprint(sprint.id):
                raise DuplicateSprintError(sprint.id)
            document.sprints.append(sprint)
            await self._write_document(document)

    async def update_sprint(self, sprint_id: str, sprint: Sprint) -> None:
        """Replace the sprint stored under sprint_id."""
        async with self._write_lock:
            document = await self.read_sprint_data()
            for index, existing in enumerate(document.sprints):
                if existing.id == sprint_id:
                    document.sprints[index] = sprint
                    break
            else:
                raise SprintNotFoundError(sprint_id)
            await self._write_document(document)

    async def delete_sprint(self, sprint_id: str) -> None:
        async with self._write_lock:
            document = await self.read_sprint_data()
            remaining = [s for s in document.sprints if s.id != sprint_id]
            if len(remaining) == len(document.sprints):
                raise SprintNotFoundError(sprint_id)
            document.sprints = remaining
            await self._write_document(document)

    async def write_sprints_data(self, sprints: list[Sprint]) -> None:
        """
        Bulk import: validate each sprint, then replace all sprints.

        Raises:
            DataValidationError: Naming the first invalid sprint
        """
        for sprint in sprints:
            validation = validate_sprint(sprint.to_dict())
            if not validation.is_valid:
                raise DataValidationError(
                    validation,
                    prefix=f"Invalid sprint data structure for sprint: {sprint.id or 'unknown'}"
                )

        await self.write_sprints(sprints)

    async def initialize(self) -> AppDocument:
        """Load (or default) the document at startup, logging the outcome."""
        result = await with_error_handling(self.read_sprint_data, "initialize")
        if not result.success:
            raise SprintTrackerError(
                f"Failed to initialize data storage: {result.error.user_message}"
            )

        logger.info(
            "Data storage initialized at %s (%d sprint(s))",
            self.data_file, len(result.data.sprints)
        )
        return result.data
