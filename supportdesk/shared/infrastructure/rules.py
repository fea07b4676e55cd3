"""
Rules Config Manager
====================

Loads the classifier rules YAML and hot-reloads it on change.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from supportdesk.config.rules import RulesConfig
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class RulesFileHandler(FileSystemEventHandler):
    """Watchdog handler reloading rules when the watched file changes."""

    def __init__(self, manager: "RulesConfigManager", path: Path):
        super().__init__()
        self.manager = manager
        self.path = path

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.path.resolve():
            logger.info("Rules file changed", extra={"path": str(self.path)})
            self.manager.reload()

    on_created = on_modified


class RulesConfigManager:
    """
    Thread-safe holder of the current `RulesConfig`.

    The watchdog thread swaps the whole config object under a lock; readers
    get an immutable snapshot. A broken file keeps the last good config.
    """

    def __init__(self):
        self._config: RulesConfig = RulesConfig()
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> RulesConfig:
        """Initial load; a missing or unreadable file means built-in defaults."""
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "Failed to load rules, using built-in rules",
                extra={"path": str(self._path), "error": str(e)}
            )
            config = RulesConfig()

        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> RulesConfig:
        if not path.exists():
            logger.info("Rules file not found, using built-in rules", extra={"path": str(path)})
            return RulesConfig()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return RulesConfig(**data)

    def reload(self) -> bool:
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error("Failed to reload rules, keeping previous", extra={"error": str(e)})
            return False

        with self._lock:
            self._config = new_config
        logger.info("Rules reloaded")
        return True

    def start_watching(self) -> None:
        """Watch the rules file's directory; skipped when the file is absent."""
        if self._path is None:
            raise RuntimeError("Rules not loaded. Call load() first.")

        if not self._path.exists():
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                RulesFileHandler(self, self._path),
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Watching rules file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(f"File watching not available, using static rules: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> RulesConfig:
        with self._lock:
            return self._config
