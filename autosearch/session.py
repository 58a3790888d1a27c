"""
Session state and its persisted projection.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from autosearch.store import (
    ACTIVE_TAB_ID,
    CURRENT_INDEX,
    CURRENT_QUERIES,
    INTERVAL_COUNT,
    INTERVAL_MODE,
    INTERVAL_SEARCH_ACTIVE,
    PENDING_QUERIES,
)


class Mode(str, Enum):
    """Pacing policy for a session."""

    CONTINUOUS = "continuous"
    INTERVAL = "interval"


class Phase(str, Enum):
    """Where a session currently sits in the search cycle."""

    IDLE = "idle"
    QUEUING = "queuing"
    EXECUTING = "executing"
    COOLDOWN_SHORT = "cooldown-short"
    COOLDOWN_LONG = "cooldown-long"
    STOPPED = "stopped"
    COMPLETED = "completed"


class Checkpoint(BaseModel):
    """
    The persisted projection of a Session.

    Field aliases are the store keys, so ``to_store()`` can be merged into
    the DurableStore as-is and ``model_validate`` accepts what it returns.
    """

    model_config = ConfigDict(populate_by_name=True)

    topics: list[str] = Field(default_factory=list, alias=CURRENT_QUERIES)
    cursor: int = Field(default=0, ge=0, alias=CURRENT_INDEX)
    interval_count: int = Field(default=0, ge=0, alias=INTERVAL_COUNT)
    interval_mode: bool = Field(default=False, alias=INTERVAL_MODE)
    interval_active: bool = Field(default=False, alias=INTERVAL_SEARCH_ACTIVE)
    active_surface_id: str | None = Field(default=None, alias=ACTIVE_TAB_ID)
    pending: list[str] = Field(default_factory=list, alias=PENDING_QUERIES)

    @classmethod
    def keys(cls) -> list[str]:
        return [field.alias or name for name, field in cls.model_fields.items()]

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Session(BaseModel):
    """
    One run of topic submission, from a start command to completion or stop.

    ``cursor`` only moves forward through ``enqueue_next``; ``queue`` holds
    the topic taken off ``topics`` but not yet confirmed by the driver.
    """

    topics: list[str] = Field(default_factory=list)
    cursor: int = Field(default=0, ge=0)
    mode: Mode = Mode.CONTINUOUS
    interval_count: int = Field(default=0, ge=0)
    stopped: bool = False
    interval_active: bool = False
    active_surface_id: str | None = None
    queue: list[str] = Field(default_factory=list)
    processing: bool = False
    phase: Phase = Phase.IDLE

    @classmethod
    def begin(cls, topics: list[str], mode: Mode) -> "Session":
        """Create a fresh session for a start command."""
        return cls(
            topics=list(topics),
            mode=mode,
            interval_active=mode is Mode.INTERVAL,
            phase=Phase.QUEUING,
        )

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> "Session":
        mode = Mode.INTERVAL if checkpoint.interval_mode else Mode.CONTINUOUS
        return cls(
            topics=checkpoint.topics,
            cursor=min(checkpoint.cursor, len(checkpoint.topics)),
            mode=mode,
            interval_count=checkpoint.interval_count,
            interval_active=mode is Mode.INTERVAL and checkpoint.interval_active,
            active_surface_id=checkpoint.active_surface_id,
            queue=checkpoint.pending,
        )

    def checkpoint(self) -> Checkpoint:
        return Checkpoint(
            topics=self.topics,
            cursor=self.cursor,
            interval_count=self.interval_count,
            interval_mode=self.mode is Mode.INTERVAL,
            interval_active=self.interval_active,
            active_surface_id=self.active_surface_id,
            pending=self.queue,
        )

    @property
    def halted(self) -> bool:
        """True once the session may no longer progress."""
        return self.stopped or (self.mode is Mode.INTERVAL and not self.interval_active)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.topics) and not self.queue

    def enqueue_next(self) -> str | None:
        """
        Move the next unconsumed topic into the pending queue.

        Returns:
            The queued topic, or None when every topic has been taken.
        """
        if self.cursor >= len(self.topics):
            return None
        topic = self.topics[self.cursor]
        self.queue.append(topic)
        self.cursor += 1
        self.interval_count += 1
        return topic
