from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Literal


TransitionKind = Literal["entered", "exited"]


@dataclass(frozen=True)
class PresenceState:
    location_id: int | None
    timestamp: dt.datetime


@dataclass(frozen=True)
class PresenceTransition:
    user_id: int
    kind: TransitionKind
    location_id: int
    timestamp: dt.datetime


class PresenceTracker:
    """Track which named location (if any) each user is currently inside.

    The first observation for a user only sets the baseline. After that a
    transition is emitted whenever the resolved location changes, provided the
    fix is not older than the last determination.
    """

    def __init__(self) -> None:
        self._states: dict[int, PresenceState] = {}

    def current(self, user_id: int) -> PresenceState | None:
        return self._states.get(user_id)

    def observe(
        self, user_id: int, location_id: int | None, timestamp: dt.datetime
    ) -> PresenceTransition | None:
        previous = self._states.get(user_id)
        if previous is None:
            self._states[user_id] = PresenceState(location_id, timestamp)
            return None

        if timestamp < previous.timestamp:
            return None
        if location_id == previous.location_id:
            return None

        self._states[user_id] = PresenceState(location_id, timestamp)

        if location_id is not None:
            return PresenceTransition(
                user_id=user_id,
                kind="entered",
                location_id=location_id,
                timestamp=timestamp,
            )
        return PresenceTransition(
            user_id=user_id,
            kind="exited",
            location_id=previous.location_id,
            timestamp=timestamp,
        )
