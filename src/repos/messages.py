"""Message handler injection point for install progress and errors."""
from __future__ import annotations

import logging
from typing import Optional

from constants import MessageTypes

logger = logging.getLogger(__name__)


class MessageHandler:
    """Receives human-readable install messages.

    Subclass and override ``report`` to route messages into a build tool's UI.
    """

    def report(self, message: str, msg_type: MessageTypes) -> None:
        raise NotImplementedError


class LoggingMessageHandler(MessageHandler):
    """Default handler that forwards messages to the logging module."""

    _LEVELS = {
        MessageTypes.DEBUG: logging.DEBUG,
        MessageTypes.INFO: logging.INFO,
        MessageTypes.WARNING: logging.WARNING,
        MessageTypes.ERROR: logging.ERROR,
    }

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def report(self, message: str, msg_type: MessageTypes) -> None:
        self.log.log(self._LEVELS.get(msg_type, logging.INFO), message)


def send(handler: Optional[MessageHandler], msg_type: MessageTypes, *parts: object) -> None:
    """Join ``parts`` and deliver them to ``handler`` (or the logging default)."""
    message = "".join(str(p) for p in parts)
    (handler or _DEFAULT).report(message, msg_type)


def error(handler: Optional[MessageHandler], *parts: object) -> None:
    send(handler, MessageTypes.ERROR, *parts)


def warning(handler: Optional[MessageHandler], *parts: object) -> None:
    send(handler, MessageTypes.WARNING, *parts)


def info(handler: Optional[MessageHandler], *parts: object) -> None:
    send(handler, MessageTypes.INFO, *parts)


def debug(handler: Optional[MessageHandler], *parts: object) -> None:
    send(handler, MessageTypes.DEBUG, *parts)


_DEFAULT = LoggingMessageHandler()
