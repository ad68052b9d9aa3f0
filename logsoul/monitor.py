"""LogSoul - Incremental tailing of watched log files"""

import logging
import os
import threading
from collections import deque
from typing import Any, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import DEFAULT_CONFIG, format_bytes, parse_size
from .events import EventEmitter
from .models import LogEntry, LogFile
from .parser import LogParser, read_lines
from .storage import Storage

logger = logging.getLogger(__name__)


class LogFileEventHandler(FileSystemEventHandler):
    """Routes file-system notifications for watched files to the monitor.

    Directories are watched, not files, so events for unrelated files in
    the same directory arrive here too and are dropped.
    """

    def __init__(self, monitor: 'FileMonitor'):
        super().__init__()
        self.monitor = monitor

    def on_modified(self, event: FileSystemEvent):
        if event.is_directory:
            return
        log_file = self.monitor.get_log_file(event.src_path)
        if log_file:
            self.monitor.handle_file_change(log_file)

    def on_deleted(self, event: FileSystemEvent):
        if event.is_directory:
            return
        log_file = self.monitor.get_log_file(event.src_path)
        if log_file:
            self.monitor.handle_file_removed(log_file.path)

    def on_moved(self, event: FileSystemEvent):
        self.on_deleted(event)


class FileMonitor(EventEmitter):
    """Tails watched files and turns appended lines into stored entries.

    A watchdog observer thread delivers change notifications; every change
    is handled under a lock owned by that path, so offsets have one writer.

    Events: ``log-entry`` (entry), ``file-added`` (path),
    ``file-removed`` (path), ``error`` (exception, path).
    """

    def __init__(self, parser: LogParser, storage: Storage,
                 config: Optional[Dict[str, Any]] = None, poll_interval: Optional[float] = None):
        super().__init__()
        self.parser = parser
        self.storage = storage
        monitoring = (config or DEFAULT_CONFIG)['monitoring']
        self.max_file_size = parse_size(monitoring['max_file_size'])
        # How long the observer blocks on its event queue between stop checks
        self.poll_interval = poll_interval or float(monitoring.get('poll_interval', 1.0))

        self.is_running = False
        self._handler = LogFileEventHandler(self)
        self._observer = self._new_observer()
        self._files: Dict[str, LogFile] = {}
        self._dir_watches: Dict[str, Any] = {}
        self._offsets: Dict[str, int] = {}
        self._path_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.RLock()

    def _new_observer(self) -> Observer:
        return Observer(timeout=self.poll_interval)

    def start(self):
        with self._lock:
            if self.is_running:
                logger.warning("FileMonitor is already running")
                return
            self.is_running = True
            self._observer.start()
            watched = len(self._files)
        logger.info("File monitor started (%d files)", watched)

    def stop(self):
        with self._lock:
            if not self.is_running and not self._files:
                return
            was_running = self.is_running
            self.is_running = False
            observer = self._observer
            self._observer = self._new_observer()
            self._files.clear()
            self._dir_watches.clear()
            self._offsets.clear()
            self._path_locks.clear()

        if was_running:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join()
        logger.info("File monitor stopped")

    @staticmethod
    def _key(path: str) -> str:
        return os.path.abspath(path)

    def get_log_file(self, path: str) -> Optional[LogFile]:
        with self._lock:
            return self._files.get(self._key(path))

    def _watch_directory(self, directory: str):
        # The observer takes its own lock while dispatching into handle_file_change,
        # so scheduling must happen without holding self._lock.
        with self._lock:
            observer = self._observer
            if directory in self._dir_watches:
                return
        watch = observer.schedule(self._handler, directory, recursive=False)
        with self._lock:
            if observer is self._observer:
                self._dir_watches.setdefault(directory, watch)

    def watch_file(self, log_file: LogFile):
        path = log_file.path
        key = self._key(path)
        if self.get_log_file(path):
            logger.warning("Already watching %s", path)
            return

        try:
            size = os.path.getsize(path)
            self._watch_directory(os.path.dirname(key))
        except OSError as e:
            logger.warning("Failed to watch %s: %s", path, e)
            self.emit('error', e, path)
            return

        with self._lock:
            if key in self._files:
                logger.warning("Already watching %s", path)
                return
            self._files[key] = log_file
            self._offsets[path] = size
            self._path_locks[path] = threading.Lock()

        logger.info("Now watching: %s", path)
        self.emit('file-added', path)

    def unwatch_file(self, path: str):
        # Directory watches stay until stop(); events for unwatched files are dropped
        with self._lock:
            log_file = self._files.pop(self._key(path), None)
            self._offsets.pop(path, None)
            self._path_locks.pop(path, None)
        if log_file is not None:
            logger.info("Stopped watching: %s", path)

    def watch_domain(self, domain: str, log_files: Iterable[LogFile]):
        log_files = list(log_files)
        logger.info("Starting to watch domain: %s (%d files)", domain, len(log_files))
        for log_file in log_files:
            self.watch_file(log_file)

    def unwatch_domain(self, domain: str, log_files: Iterable[LogFile]):
        logger.info("Stopping watch for domain: %s", domain)
        for log_file in log_files:
            self.unwatch_file(log_file.path)

    def handle_file_removed(self, path: str):
        if not self.get_log_file(path):
            return
        logger.info("File removed: %s", path)
        self.unwatch_file(path)
        self.emit('file-removed', path)

    def _set_offset(self, path: str, offset: int):
        # An unwatch or stop that raced with this change wins
        with self._lock:
            if path in self._offsets:
                self._offsets[path] = offset

    def handle_file_change(self, log_file: LogFile) -> List[LogEntry]:
        """Read the bytes appended since the last change and ingest them.

        Returns the entries produced by this change, in file order.
        """
        path = log_file.path
        with self._lock:
            path_lock = self._path_locks.get(path)
        if path_lock is None:
            return []

        with path_lock:
            with self._lock:
                if path not in self._offsets:
                    return []
                offset = self._offsets[path]

            try:
                return self._process_change(log_file, offset)
            except Exception as e:
                logger.warning("Error processing file change for %s: %s", path, e)
                self.emit('error', e, path)
                return []

    def _process_change(self, log_file: LogFile, offset: int) -> List[LogEntry]:
        path = log_file.path
        size = os.path.getsize(path)

        if size < offset:
            # Rotated or truncated: the new content is read on the next change
            logger.info("File rotated: %s", path)
            self._set_offset(path, 0)
            return []

        if size == offset:
            return []

        domain = self.storage.get_domain(log_file.domain)
        if not domain:
            logger.warning("Domain not found: %s", log_file.domain)
            return []

        new_bytes = size - offset
        if new_bytes > self.max_file_size:
            logger.warning("File change too large, skipping: %s (%s)", path, format_bytes(new_bytes))
            self._set_offset(path, size)
            return []

        entries = self._read_new_lines(log_file, offset, size, domain.id)
        if entries:
            self.storage.insert_logs(entries)
            self.storage.update_domain_last_seen(domain.id)
            for entry in entries:
                self.emit('log-entry', entry)

        self._set_offset(path, size)
        return entries

    def _read_new_lines(self, log_file: LogFile, start: int, end: int, domain_id: int) -> List[LogEntry]:
        entries = []
        for line in read_lines(log_file.path, start, end):
            if not line.strip():
                continue
            try:
                entry = self.parser.parse_line(line, domain_id, log_file.format)
            except Exception as e:
                logger.warning("Failed to parse line %r: %s", line[:100], e)
                continue
            if entry:
                entries.append(entry)
            else:
                logger.debug("Skipped unparsed line in %s: %r", log_file.path, line[:100])
        return entries

    def get_watched_files(self) -> List[str]:
        with self._lock:
            return [log_file.path for log_file in self._files.values()]

    def is_watching(self, path: str) -> bool:
        with self._lock:
            return self._key(path) in self._files

    def get_offset(self, path: str) -> Optional[int]:
        with self._lock:
            return self._offsets.get(path)

    def tail_file(self, path: str, lines: int = 100) -> List[str]:
        return list(deque((line for line in read_lines(path) if line.strip()), maxlen=lines))

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'watched_files': len(self._files),
                'file_positions': dict(self._offsets),
                'is_running': self.is_running,
            }
