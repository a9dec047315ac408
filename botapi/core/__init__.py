"""Framework-agnostic building blocks — logging and the event emitter.

This package must NEVER import from the rest of ``botapi``.
"""

from botapi.core.events import EventEmitter
from botapi.core.logger import BotApiLogger

__all__ = [
    "EventEmitter",
    "BotApiLogger",
]
