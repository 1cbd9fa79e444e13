"""Rotating text file sink for traffic logs."""

from pathlib import Path
from threading import Lock
from typing import Optional, TextIO
import os
import sys

from bl654.logging.log_models import LogEntry


class FileHandler:
    """Thread-safe append-only log file with size-based rotation.

    The handler keeps a running byte count instead of asking the filesystem
    for the size on every line, since a busy scan can trace hundreds of
    advertisement lines per second. When the count reaches ``max_size_mb``
    the file becomes ``<name>.1``, older backups move up by one and the
    oldest is deleted. With ``backup_count=0`` the file is truncated instead.

    Example:
        >>> handler = FileHandler("~/.bl654/logs/traffic.log", max_size_mb=10, backup_count=5)
        >>> handler.write(log_entry)
        >>> handler.close()
    """

    def __init__(self, log_file_path: str, max_size_mb: float = 10, backup_count: int = 5):
        """Create the log directory and open the file for appending.

        Args:
            log_file_path: Path to log file (supports ~ expansion)
            max_size_mb: File size in MB that triggers rotation (default: 10)
            backup_count: Number of rotated backups to keep (default: 5)

        Raises:
            OSError: If the log directory cannot be created
        """
        self.log_file_path = Path(log_file_path).expanduser().resolve()
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self._lock = Lock()
        self._stream: Optional[TextIO] = None
        self._size = 0
        self._is_closed = False

        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self._reopen()

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._is_closed

    def write(self, entry: LogEntry) -> bool:
        """Append one entry as a single line.

        Returns:
            False if the handler is closed or the write failed
        """
        text = entry.to_string() + '\n'
        with self._lock:
            if not self.is_open:
                return False
            try:
                if self._size >= self.max_size_bytes:
                    self._rotate()
                    if self._stream is None:
                        return False
                self._stream.write(text)
                self._stream.flush()
            except OSError as e:
                print(f"ERROR: Failed to write log entry to {self.log_file_path}: {e}", file=sys.stderr)
                return False
            self._size += len(text.encode('utf-8'))
            return True

    def _reopen(self) -> None:
        try:
            self._stream = open(self.log_file_path, mode='a', encoding='utf-8')
            self._size = self.log_file_path.stat().st_size
        except OSError as e:
            print(f"ERROR: Failed to open log file {self.log_file_path}: {e}", file=sys.stderr)
            self._stream = None
            self._size = 0

    def _backup_path(self, index: int) -> Path:
        return self.log_file_path.with_name(f"{self.log_file_path.name}.{index}")

    def _rotate(self) -> None:
        """Move the current file aside and start a new one.

        Caller must hold self._lock.
        """
        self._stream.close()
        try:
            if self.backup_count > 0:
                oldest = self._backup_path(self.backup_count)
                if oldest.exists():
                    oldest.unlink()
                for index in range(self.backup_count - 1, 0, -1):
                    if self._backup_path(index).exists():
                        self._backup_path(index).replace(self._backup_path(index + 1))
                self.log_file_path.replace(self._backup_path(1))
            else:
                self.log_file_path.unlink()
        except OSError as e:
            print(f"WARNING: Log rotation failed: {e}", file=sys.stderr)
        self._reopen()

    def flush(self) -> None:
        """Force buffered writes to disk."""
        with self._lock:
            if not self.is_open:
                return
            try:
                self._stream.flush()
                os.fsync(self._stream.fileno())
            except OSError as e:
                print(f"ERROR: Failed to flush log file: {e}", file=sys.stderr)

    def close(self) -> None:
        """Close the file. Idempotent."""
        with self._lock:
            if self._is_closed:
                return
            self._is_closed = True
            if self._stream is None:
                return
            try:
                self._stream.close()
            except OSError as e:
                print(f"ERROR: Failed to close log file: {e}", file=sys.stderr)
            finally:
                self._stream = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
