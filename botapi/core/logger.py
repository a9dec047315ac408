"""BotApiLogger — Singleton JSON logger with console and optional rotating file output.

Provides one project-wide root logger (``botapi``) that writes structured JSON
to stdout and, when ``BOTAPI_LOG_DIR`` is set, to ``<dir>/botapi.log`` with
automatic rotation.  Library modules ask for named children
(``botapi.transport``, ``botapi.provider.polling`` …) so every line records
which component produced it.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional


class _JsonFormatter(logging.Formatter):
    """Format every log record as a single-line JSON object.

    Standard fields (timestamp, level, logger, message, module, func_name)
    are always present.  Any *extra* key-value pairs passed via the ``extra``
    parameter of a logging call are merged into the JSON object, giving callers
    an easy way to attach context such as ``api_method``, ``update_id`` or
    ``offset``.

    Example::

        logger.debug("Calling remote method", extra={"api_method": "getMe"})

    Produces::

        {"timestamp": "…", "level": "DEBUG", …, "api_method": "getMe"}
    """

    # Keys that belong to the standard LogRecord; everything else is extra.
    _BUILTIN_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None,
    )))

    def format(self, record: logging.LogRecord) -> str:
        """Serialize *record* to a JSON string."""
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func_name": record.funcName,
        }

        for key, value in record.__dict__.items():
            if key not in self._BUILTIN_ATTRS and key not in log_entry:
                log_entry[key] = value

        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class BotApiLogger:
    """Singleton logger with a console handler and an optional rotating file.

    Usage::

        from botapi.core.logger import BotApiLogger

        logger = BotApiLogger.get_logger("transport")
        logger.info("Session opened")
    """

    _instance: Optional["BotApiLogger"] = None
    _logger: Optional[logging.Logger] = None

    ROOT_NAME: str = "botapi"

    # Rotation settings
    _LOG_FILE: str = "botapi.log"
    _MAX_BYTES: int = 5 * 1024 * 1024  # 5 MB
    _BACKUP_COUNT: int = 5

    def __new__(cls, level: Optional[int] = None) -> "BotApiLogger":
        """Ensure only one instance is ever created (Singleton)."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init_logger(level)
        return cls._instance

    # ------------------------------------------------------------------
    # Initialisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_level(level: Optional[int]) -> int:
        """Explicit *level* wins, then ``BOTAPI_LOG_LEVEL``, then INFO."""
        if level is not None:
            return level
        name = os.environ.get("BOTAPI_LOG_LEVEL", "INFO").strip().upper()
        resolved = logging.getLevelName(name)
        return resolved if isinstance(resolved, int) else logging.INFO

    def _init_logger(self, level: Optional[int]) -> None:
        """Create the underlying :class:`logging.Logger` and attach handlers."""
        resolved = self._resolve_level(level)
        self._logger = logging.getLogger(self.ROOT_NAME)
        self._logger.setLevel(resolved)

        # Avoid duplicate handlers if the module is reloaded.
        if self._logger.handlers:
            return

        formatter = _JsonFormatter()

        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(resolved)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        log_dir = os.environ.get("BOTAPI_LOG_DIR")
        if not log_dir:
            return

        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, self._LOG_FILE),
            maxBytes=self._MAX_BYTES,
            backupCount=self._BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(resolved)
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def get_logger(name: Optional[str] = None, level: Optional[int] = None) -> logging.Logger:
        """Return the shared root logger, or its child called *name*.

        Creates the singleton on first call; subsequent calls reuse the same
        handlers regardless of the *level* argument.
        """
        instance = BotApiLogger(level)
        assert instance._logger is not None  # guaranteed by __new__
        if name:
            return instance._logger.getChild(name)
        return instance._logger

    def cleanup(self) -> None:
        """Flush and close all handlers attached to the logger."""
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)
