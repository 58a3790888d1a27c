"""
Durable named wake requests.

A wake request asks for the controller to be invoked again no earlier than
a given wall-clock time. Requests are kept in a JSON file so they survive
the agent process; one-shot requests are consumed when they fire, periodic
ones are pushed forward by their period.
"""

import time
from pathlib import Path

from pydantic import BaseModel, Field

from autosearch.store import read_json, write_json

CONTINUE_SEARCH = "continueSearch"
INTERVAL_SEARCH = "intervalSearch"
BACKUP_CHECK = "backupCheck"


class WakeRequest(BaseModel):
    """A named timer that fires not before ``fire_at`` (epoch seconds)."""

    name: str
    fire_at: float
    period_minutes: float | None = Field(default=None, gt=0)


class Scheduler:
    """
    Keeps at most one live WakeRequest per name.

    Creating a request under an existing name supersedes the previous one.
    Delivery is coarse: the agent loop polls ``pop_due`` once per tick.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._requests: dict[str, WakeRequest] | None = None

    def _load(self) -> dict[str, WakeRequest]:
        if self._requests is None:
            raw = read_json(self.path)
            self._requests = {
                name: WakeRequest.model_validate(entry) for name, entry in raw.items()
            }
        return self._requests

    def _save(self, requests: dict[str, WakeRequest]) -> None:
        write_json(self.path, {name: r.model_dump() for name, r in requests.items()})
        self._requests = requests

    def create(
        self,
        name: str,
        delay_seconds: float,
        period_minutes: float | None = None,
        now: float | None = None,
    ) -> WakeRequest:
        """
        Arrange for ``name`` to fire after ``delay_seconds``.

        Args:
            name: Request name; replaces any live request with the same name.
            delay_seconds: Relative delay from ``now``.
            period_minutes: If set, the request re-arms itself after firing.
            now: Override for the current time, in epoch seconds.

        Returns:
            The stored WakeRequest.
        """
        now = time.time() if now is None else now
        request = WakeRequest(
            name=name,
            fire_at=now + max(delay_seconds, 0.0),
            period_minutes=period_minutes,
        )
        requests = dict(self._load())
        requests[name] = request
        self._save(requests)
        return request

    def get(self, name: str) -> WakeRequest | None:
        return self._load().get(name)

    def all(self) -> list[WakeRequest]:
        return sorted(self._load().values(), key=lambda r: r.fire_at)

    def clear(self, name: str) -> bool:
        """Cancel ``name``. Returns True if a request was removed."""
        requests = dict(self._load())
        if requests.pop(name, None) is None:
            return False
        self._save(requests)
        return True

    def clear_all(self) -> None:
        self._save({})

    def pop_due(self, now: float | None = None) -> list[str]:
        """
        Collect every request whose time has come.

        One-shot requests are removed; periodic requests are re-armed one
        period after ``now``.

        Args:
            now: Override for the current time, in epoch seconds.

        Returns:
            Names of the fired requests, earliest first.
        """
        now = time.time() if now is None else now
        requests = dict(self._load())
        due = sorted(
            (r for r in requests.values() if r.fire_at <= now),
            key=lambda r: r.fire_at,
        )
        if not due:
            return []
        for request in due:
            if request.period_minutes:
                requests[request.name] = request.model_copy(
                    update={"fire_at": now + request.period_minutes * 60}
                )
            else:
                del requests[request.name]
        self._save(requests)
        return [r.name for r in due]
