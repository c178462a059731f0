"""
Hot reload mechanism for classification rules configuration.

This module provides file watching and automatic reloading of the
classification criteria when the YAML configuration changes.
"""

import threading
import time
from pathlib import Path
from typing import Optional, Union

from watchdog.events import FileModifiedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from core.config import settings
from core.logging import get_logger

from .classifier import OFIClassifier

logger = get_logger(__name__)


class ClassificationRulesFileHandler(FileSystemEventHandler):
    """Handles file system events for the classification rules YAML."""

    def __init__(self, classifier: OFIClassifier, debounce_seconds: float = 2.0):
        """
        Initialize file handler.

        Args:
            classifier: Classifier to reload
            debounce_seconds: Time to wait before reloading after change
        """
        self.classifier = classifier
        self.debounce_seconds = debounce_seconds
        self._reload_timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def on_modified(self, event):
        """Handle file modification event."""
        if not isinstance(event, FileModifiedEvent):
            return
        if Path(event.src_path).name != self.classifier.rules_path.name:
            return
        logger.info(f"Detected change in {event.src_path}")
        self._schedule_reload()

    def _schedule_reload(self):
        """Schedule a reload after debounce period."""
        with self._lock:
            if self._reload_timer and self._reload_timer.is_alive():
                self._reload_timer.cancel()

            self._reload_timer = threading.Timer(self.debounce_seconds, self._perform_reload)
            self._reload_timer.daemon = True
            self._reload_timer.start()

    def _perform_reload(self):
        """Perform the actual reload; failures keep the current catalogue."""
        start_time = time.time()
        logger.info("Reloading classification rules...")

        if self.classifier.reload_rules():
            logger.info(f"Classification rules reloaded in {time.time() - start_time:.3f}s")
        else:
            logger.warning(
                "Classification rules reload rejected",
                extra={"event": "rules_reload", "status": "failure", "path": str(self.classifier.rules_path)},
            )

    def cancel(self):
        """Cancel a pending reload."""
        with self._lock:
            if self._reload_timer:
                self._reload_timer.cancel()
                self._reload_timer = None


class ClassificationRulesWatcher:
    """Watches the classification rules file for changes and triggers reload."""

    def __init__(
        self,
        classifier: OFIClassifier,
        config_path: Optional[Union[str, Path]] = None,
        debounce_seconds: Optional[float] = None,
    ):
        """
        Initialize the watcher.

        Args:
            classifier: Classifier to reload
            config_path: Path to watch (defaults to the classifier's rules path)
            debounce_seconds: Time to wait before reloading (defaults to settings)
        """
        self.classifier = classifier
        self.config_path = Path(config_path or classifier.rules_path)
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.rules_reload_debounce_seconds
        )
        self.observer = Observer()
        self.handler = ClassificationRulesFileHandler(classifier, self.debounce_seconds)
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    def start(self):
        """Start watching for file changes."""
        if self._started:
            logger.warning("Watcher already started")
            return

        # Watch the directory containing the config file
        watch_dir = self.config_path.parent
        self.observer.schedule(self.handler, str(watch_dir), recursive=False)
        self.observer.start()
        self._started = True

        logger.info(f"Started watching {self.config_path} for changes")

    def stop(self):
        """Stop watching for file changes."""
        if not self._started:
            return

        self.handler.cancel()
        self.observer.stop()
        self.observer.join()
        self._started = False

        logger.info("Stopped watching for file changes")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
