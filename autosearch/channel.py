"""
Command messages and the file-based channel that carries them.

An operator process drops a command into the agent's inbox directory; the
agent drains the inbox once per tick (and while waiting inside a search
step), hands each message to the controller and writes the reply next to
it.
"""

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from autosearch.session import Mode
from autosearch.store import StoreError, read_json, write_json

log = logging.getLogger("autosearch")

START_SEARCH = "startSearch"
STOP_INTERVAL = "stopInterval"
STOP_ALL = "stopAll"
DOWNLOAD_LOGS = "downloadLogs"


class StartSearch(BaseModel):
    action: Literal["startSearch"]
    queries: list[str] = Field(min_length=1)
    mode: Mode = Mode.CONTINUOUS


class Control(BaseModel):
    action: Literal["stopInterval", "stopAll", "downloadLogs"]


Command = Annotated[Union[StartSearch, Control], Field(discriminator="action")]

command_adapter: TypeAdapter[StartSearch | Control] = TypeAdapter(Command)


def parse_command(message: dict[str, Any]) -> StartSearch | Control:
    """
    Validate a raw command message.

    Raises:
        pydantic.ValidationError: If the message is not a known command.
    """
    return command_adapter.validate_python(message)


class CommandChannel:
    """
    Request/response messaging through a directory of JSON files.

    Requests are named ``<time_ns>-<id>.json`` so a sorted listing gives
    arrival order; replies are written as ``<same stem>.reply``.
    """

    def __init__(self, inbox: Path, reply_timeout: float = 10.0) -> None:
        self.inbox = inbox
        self.reply_timeout = reply_timeout

    def send(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """
        Deliver ``message`` to the agent and wait for its reply.

        Args:
            message: A command message, e.g. ``{"action": "stopAll"}``.

        Returns:
            The reply dict, or None if the agent did not answer in time.
        """
        stem = f"{time.time_ns()}-{uuid.uuid4().hex}"
        write_json(self.inbox / f"{stem}.json", message)
        reply_path = self.inbox / f"{stem}.reply"
        deadline = time.monotonic() + self.reply_timeout
        while time.monotonic() < deadline:
            if reply_path.exists():
                try:
                    reply = read_json(reply_path)
                except StoreError:
                    time.sleep(0.1)
                    continue
                reply_path.unlink(missing_ok=True)
                return reply
            time.sleep(0.1)
        log.warning(f"No reply to {message.get('action')} within {self.reply_timeout}s")
        return None

    def pending(self) -> list[Path]:
        if not self.inbox.exists():
            return []
        return sorted(self.inbox.glob("*.json"))

    def drain(self, handler: Callable[[dict[str, Any]], dict[str, Any]]) -> int:
        """
        Dispatch every waiting command to ``handler``.

        Args:
            handler: Called with each message; its return value is the reply.

        Returns:
            Number of commands handled.
        """
        handled = 0
        for path in self.pending():
            try:
                message = json.loads(path.read_text())
            except (OSError, ValueError) as e:
                log.warning(f"Discarding unreadable command {path.name}: {e}")
                reply: dict[str, Any] = {"status": "Invalid command"}
            else:
                reply = handler(message if isinstance(message, dict) else {})
            path.unlink(missing_ok=True)
            try:
                write_json(path.with_suffix(".reply"), reply)
            except StoreError as e:
                log.error(f"Cannot write reply for {path.name}: {e}")
            handled += 1
        return handled
