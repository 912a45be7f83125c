"""
Certificate Registry - Registry Storage Backend

This module provides JSON-based persistence for ledger documents with
cross-process file locking, atomic replacement and rotating backups.
"""

import fcntl
import hashlib
import json
import logging
import os
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Union

from .schema import RegistryDocument


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base storage exception."""
    pass


class LockTimeoutError(StorageError):
    """Lock acquisition timeout exception."""
    pass


class IntegrityError(StorageError):
    """File integrity check failure exception."""
    pass


class FileLock:
    """Exclusive lock file shared between processes."""

    def __init__(self, file_path: Union[str, Path], timeout: float = 30.0):
        self.file_path = Path(file_path)
        self.lock_file_path = self.file_path.with_suffix(self.file_path.suffix + '.lock')
        self.timeout = timeout
        self.lock_fd = None
        self._depth = 0
        self._thread_lock = RLock()

    def acquire(self) -> bool:
        """Acquire file lock with timeout. Re-entrant within one instance."""
        self._thread_lock.acquire()
        if self.lock_fd is not None:
            self._depth += 1
            return True

        start_time = time.time()
        while time.time() - start_time < self.timeout:
            try:
                self.lock_fd = os.open(
                    str(self.lock_file_path),
                    os.O_CREAT | os.O_EXCL | os.O_RDWR
                )
            except FileExistsError:
                time.sleep(0.05)
                continue

            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(self.lock_fd)
                os.unlink(self.lock_file_path)
                self.lock_fd = None
                time.sleep(0.05)
                continue

            self._depth = 1
            return True

        self._thread_lock.release()
        raise LockTimeoutError(f"Failed to acquire lock within {self.timeout} seconds")

    def release(self) -> None:
        """Release file lock."""
        if self.lock_fd is None:
            return

        self._depth -= 1
        if self._depth == 0:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
                os.unlink(self.lock_file_path)
            except OSError as e:
                logger.warning(f"Failed to release lock {self.lock_file_path}: {e}")
            finally:
                self.lock_fd = None
        self._thread_lock.release()

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class JSONStorage:
    """JSON file storage with atomic writes and rotating backups."""

    def __init__(
        self,
        file_path: Union[str, Path],
        backup_count: int = 5,
        lock_timeout: float = 30.0
    ):
        self.file_path = Path(file_path)
        self.backup_count = backup_count
        self.lock = FileLock(self.file_path, timeout=lock_timeout)

        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def _calculate_checksum(self, data: bytes) -> str:
        """Calculate SHA-256 checksum of data."""
        return hashlib.sha256(data).hexdigest()

    def _read_file(self) -> bytes:
        if not self.file_path.exists():
            return b''
        with open(self.file_path, 'rb') as f:
            return f.read()

    def _write_file(self, data: Dict[str, Any]) -> bytes:
        """Write data to a temporary file and rename it over the target."""
        json_data = json.dumps(data, indent=2, default=str).encode('utf-8')
        temp_file = self.file_path.with_suffix(self.file_path.suffix + '.tmp')

        try:
            with open(temp_file, 'wb') as f:
                f.write(json_data)
            os.replace(temp_file, self.file_path)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StorageError(f"Failed to write file: {e}")

        return json_data

    def _backup_dir(self) -> Path:
        return self.file_path.parent / 'backups'

    def _create_backup(self) -> None:
        """Create timestamped backup of current file."""
        if not self.file_path.exists():
            return

        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S_%f')
        backup_path = self._backup_dir() / f"{self.file_path.stem}_{timestamp}{self.file_path.suffix}"
        backup_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.file_path, backup_path)

        self._cleanup_old_backups()

    def _cleanup_old_backups(self) -> None:
        """Remove old backup files beyond backup_count."""
        for backup_file in self.list_backups()[self.backup_count:]:
            try:
                backup_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove old backup {backup_file}: {e}")

    def read(self) -> Dict[str, Any]:
        """Read and deserialize data from storage."""
        with self.lock:
            data = self._read_file()
            if not data:
                return {}
            try:
                return json.loads(data.decode('utf-8'))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise IntegrityError(f"Invalid JSON data: {e}")

    def write(self, data: Dict[str, Any], create_backup: bool = True) -> str:
        """Write data to storage atomically and return its checksum."""
        with self.lock:
            if create_backup and self.backup_count > 0:
                self._create_backup()
            return self._calculate_checksum(self._write_file(data))

    def update(self, updater_func: Callable[[Dict[str, Any]], Dict[str, Any]],
               create_backup: bool = True) -> str:
        """Read, transform and write back data while holding the lock."""
        with self.lock:
            current_data = self.read()
            updated_data = updater_func(current_data)
            return self.write(updated_data, create_backup=create_backup)

    def list_backups(self) -> List[Path]:
        """List available backup files, newest first."""
        backup_dir = self._backup_dir()
        if not backup_dir.exists():
            return []

        pattern = f"{self.file_path.stem}_*{self.file_path.suffix}"
        backup_files = list(backup_dir.glob(pattern))
        backup_files.sort(key=lambda p: p.name, reverse=True)
        return backup_files


class RegistryStorage:
    """High-level ledger document storage interface."""

    def __init__(
        self,
        storage_dir: Union[str, Path] = "ledger_data",
        backup_count: int = 5
    ):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self.json_storage = JSONStorage(
            self.storage_dir / "ledger.json",
            backup_count=backup_count
        )

    def load_document(self) -> Optional[RegistryDocument]:
        """Load the ledger document, or None if nothing is stored yet."""
        data = self.json_storage.read()
        if not data:
            return None

        try:
            return RegistryDocument.model_validate(data)
        except ValueError as e:
            raise IntegrityError(f"Failed to load ledger document: {e}")

    def save_document(self, document: RegistryDocument) -> str:
        """Save the ledger document."""
        return self.json_storage.write(document.model_dump(mode='json'))

    def update_document(
        self,
        updater_func: Callable[[Optional[RegistryDocument]], RegistryDocument]
    ) -> RegistryDocument:
        """
        Update the ledger document atomically.

        The updater receives the stored document (None if empty) and returns
        the document to persist. If it raises, nothing is written. The block
        height never decreases.
        """
        result = {}

        def document_updater(data: Dict[str, Any]) -> Dict[str, Any]:
            current = RegistryDocument.model_validate(data) if data else None
            updated = updater_func(current)
            if current is not None and updated.block_number < current.block_number:
                raise IntegrityError(
                    f"Refusing to rewind ledger from block {current.block_number} to {updated.block_number}"
                )
            result['document'] = updated
            return updated.model_dump(mode='json')

        self.json_storage.update(document_updater)
        return result['document']

