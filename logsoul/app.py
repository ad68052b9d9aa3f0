"""LogSoul - Pipeline wiring"""

import logging
from typing import Any, Dict, Iterable, Optional

from rich.console import Console

from .alerts import AlertManager
from .analyzer import LogAnalyzer
from .config import DEFAULT_CONFIG, parse_time_window
from .models import LogFile
from .monitor import FileMonitor
from .parser import LogParser
from .storage import Storage

logger = logging.getLogger(__name__)


class LogSoulApp:
    """Connects the tailing engine, analyzer and alert manager to one store.

    Every ingested entry is handed to the alert manager's immediate path;
    the periodic sweep runs on its own thread.
    """

    def __init__(self, config: Optional[Dict[str, Any]], storage: Storage,
                 console: Optional[Console] = None):
        self.config = config or DEFAULT_CONFIG
        self.storage = storage
        self.console = console or Console()

        self.parser = LogParser()
        self.monitor = FileMonitor(self.parser, storage, self.config)
        self.analyzer = LogAnalyzer(storage)
        check_interval = parse_time_window(self.config['monitoring']['scan_interval']).total_seconds()
        self.alert_manager = AlertManager(
            storage, self.analyzer, self.config,
            check_interval=check_interval, console=self.console,
        )

        self.monitor.on('log-entry', self.alert_manager.process_log_entry)
        self.monitor.on('file-added', self._on_file_added)
        self.monitor.on('file-removed', self._on_file_removed)
        self.monitor.on('error', self._on_error)

    def _on_file_added(self, path: str):
        logger.debug("File added: %s", path)

    def _on_file_removed(self, path: str):
        logger.warning("Watched file disappeared: %s", path)

    def _on_error(self, error: Exception, path: str):
        logger.error("Monitor error on %s: %s", path, error)

    def start(self, log_files: Iterable[LogFile]):
        for log_file in log_files:
            self.storage.add_domain(log_file.domain)
            self.monitor.watch_file(log_file)

        self.monitor.start()
        self.alert_manager.start()
        logger.info("LogSoul started")

    def stop(self):
        self.monitor.stop()
        self.alert_manager.stop()
        logger.info("LogSoul stopped")
