"""
Self-Logger

Each component (engine, on-demand cache, runtime) logs to itself.

Design:
- With a base directory, logs are TSV files (human-readable, grep-able)
  at {base_dir}/logs/{component}/log.tsv
- Without one, logs live in a bounded in-memory buffer
- Append-only; log rotation when the file exceeds a size limit
- Query logs with filters (level, custom fields)

Philosophy:
Components are self-contained. An engine knows its own swaps and failures
and can be asked about them directly. No central logging system.
"""

import csv
from collections import deque
from datetime import datetime
from itertools import count
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union
import hashlib
import threading

DEFAULT_FIELDS = ['entry_id', 'timestamp', 'level', 'message']


class SelfLogger:
    """
    Self-logging for runtime components.

    Entries are dicts with entry_id, timestamp, level, message and any
    extra keyword fields passed to log(). Fields with None values are dropped.
    """

    def __init__(
        self,
        component: str,
        base_dir: Optional[Path | str] = None,
        max_log_size: Optional[int] = None,
        max_memory_entries: int = 1000,
    ):
        """
        Initialize self-logger.

        Args:
            component: Name of the logging component (e.g., 'engine-1')
            base_dir: Base directory for log storage; None keeps logs in memory
            max_log_size: Maximum log file size in bytes before rotation
                         (default: 10MB)
            max_memory_entries: Size of the in-memory buffer when base_dir is None
        """
        self.component = component
        self.max_log_size = max_log_size or (10 * 1024 * 1024)
        self._lock = threading.Lock()
        self._sequence = count()

        self.base_dir: Optional[Path] = None
        self.log_dir: Optional[Path] = None
        self.log_file: Optional[Path] = None
        self._memory: Deque[Dict[str, Any]] = deque(maxlen=max_memory_entries)

        if base_dir is not None:
            self.base_dir = Path(base_dir)
            self.log_dir = self.base_dir / 'logs' / component
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / 'log.tsv'

    @property
    def persistent(self) -> bool:
        """True when entries are written to disk"""
        return self.log_file is not None

    def log(self, level: str, message: str, **kwargs) -> None:
        """
        Log an entry.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            message: Log message
            **kwargs: Additional fields to log (source, layer, loader, etc.)
        """
        with self._lock:
            timestamp = datetime.now().isoformat()
            entry = {
                'entry_id': self._generate_entry_id(timestamp, level, message),
                'timestamp': timestamp,
                'level': level,
                'message': message,
                **kwargs,
            }
            entry = {k: v for k, v in entry.items() if v is not None}

            if not self.persistent:
                self._memory.append({k: str(v) for k, v in entry.items()})
                return

            self._rotate_if_needed()

            existing = self._get_fieldnames()
            fieldnames = existing + [k for k in entry.keys() if k not in existing]

            is_new_file = not self.log_file.exists()
            if not is_new_file and len(fieldnames) > len(existing):
                self._rewrite_header(fieldnames)

            with open(self.log_file, 'a', newline='') as f:
                writer = csv.DictWriter(f, fieldnames=fieldnames, delimiter='\t')
                if is_new_file:
                    writer.writeheader()
                writer.writerow(entry)

    def debug(self, message: str, **kwargs) -> None:
        """Log DEBUG level message"""
        self.log('DEBUG', message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log INFO level message"""
        self.log('INFO', message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log WARNING level message"""
        self.log('WARNING', message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log ERROR level message"""
        self.log('ERROR', message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        """Log CRITICAL level message"""
        self.log('CRITICAL', message, **kwargs)

    def get_logs(
        self,
        level: Optional[Union[str, List[str]]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        **filters,
    ) -> List[Dict[str, Any]]:
        """
        Get log entries, oldest first.

        Args:
            level: Filter by level (string or list of strings)
            limit: Maximum number of entries to return
            offset: Number of entries to skip
            **filters: Additional filters (e.g., source='/a/b.py')

        Returns:
            List of log entries (dictionaries of strings)
        """
        with self._lock:
            if self.persistent:
                entries = self._read_files()
            else:
                entries = list(self._memory)

        if level is not None:
            if isinstance(level, str):
                level = [level]
            entries = [e for e in entries if e.get('level') in level]

        for key, value in filters.items():
            entries = [e for e in entries if e.get(key) == str(value)]

        if offset > 0:
            entries = entries[offset:]

        if limit is not None:
            entries = entries[:limit]

        return entries

    def _read_files(self) -> List[Dict[str, Any]]:
        entries = []
        # Rotated files hold older entries
        for path in sorted(self.log_dir.glob('log-*.tsv')) + [self.log_file]:
            if not path.exists():
                continue
            with open(path, 'r', newline='') as f:
                reader = csv.DictReader(f, delimiter='\t')
                entries.extend(dict(row) for row in reader)
        return entries

    def _get_fieldnames(self) -> List[str]:
        """Get existing fieldnames from log file"""
        if not self.log_file.exists():
            return list(DEFAULT_FIELDS)

        with open(self.log_file, 'r', newline='') as f:
            reader = csv.DictReader(f, delimiter='\t')
            return list(reader.fieldnames or DEFAULT_FIELDS)

    def _rewrite_header(self, fieldnames: List[str]) -> None:
        """Rewrite the current log file with a widened header"""
        with open(self.log_file, 'r', newline='') as f:
            rows = list(csv.DictReader(f, delimiter='\t'))

        with open(self.log_file, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, delimiter='\t', restval='')
            writer.writeheader()
            writer.writerows(rows)

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size"""
        if not self.log_file.exists():
            return

        if self.log_file.stat().st_size < self.max_log_size:
            return

        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S-%f')
        self.log_file.rename(self.log_dir / f'log-{timestamp}.tsv')

    def _generate_entry_id(self, timestamp: str, level: str, message: str) -> str:
        """
        Generate unique entry ID.

        Hash of timestamp, component, a per-logger sequence number and message.
        """
        content = f"{timestamp}:{self.component}:{next(self._sequence)}:{level}:{message}"
        return hashlib.sha256(content.encode()).hexdigest()[:16]
