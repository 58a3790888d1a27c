"""
Log persistence for the downloadable activity log.
"""

import logging
import time
from collections import deque

from autosearch.store import APP_LOG, DurableStore, StoreError


class StoreLogHandler(logging.Handler):
    """
    Keeps the most recent log lines and mirrors them to the durable store.

    Lines are formatted as ``[YYYY-MM-DD HH:MM:SS] LEVEL: message`` and
    written under the ``app.log`` key after every record, so the log
    survives an agent restart and can be handed out by ``downloadLogs``.
    """

    def __init__(self, store: DurableStore, max_entries: int = 500) -> None:
        super().__init__(level=logging.DEBUG)
        self.store = store
        self.entries: deque[str] = deque(maxlen=max_entries)
        self.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S")
        )
        self.formatter.converter = time.gmtime
        self.load()

    def load(self) -> None:
        """Replace the in-memory buffer with the lines persisted in the store."""
        try:
            content = self.store.get([APP_LOG]).get(APP_LOG, "")
        except StoreError:
            return
        self.entries.clear()
        self.entries.extend(line for line in content.split("\n") if line.strip())

    def content(self) -> str:
        return "\n".join(self.entries)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.entries.append(self.format(record))
            self.store.set({APP_LOG: self.content()})
        except Exception:
            self.handleError(record)

    def clear(self) -> None:
        self.entries.clear()
        try:
            self.store.remove([APP_LOG])
        except StoreError:
            pass


def attach(handler: StoreLogHandler, name: str = "autosearch") -> StoreLogHandler:
    """
    Install ``handler`` on the named logger, replacing any earlier StoreLogHandler.

    Returns:
        The installed handler.
    """
    logger = logging.getLogger(name)
    for existing in list(logger.handlers):
        if isinstance(existing, StoreLogHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    return handler
