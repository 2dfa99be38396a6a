from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from .actions import Action
from .errors import NonDeterminismError
from .events import HistoryEvent


class HistoryCursor:
    """Forward-only reader over an orchestration's event history.

    The cursor never rewinds: each event is consumed exactly once per
    invocation, in recorded order. Correlation with actions is by sequence
    number only; payloads are never compared.
    """

    def __init__(self, events: Iterable[HistoryEvent | Mapping[str, object]]) -> None:
        self._events: list[HistoryEvent] = [
            e if isinstance(e, HistoryEvent) else HistoryEvent.from_json(dict(e)) for e in events
        ]
        self._position = -1
        played = [i for i, e in enumerate(self._events) if e.is_played]
        self._last_played = played[-1] if played else -1

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> Sequence[HistoryEvent]:
        return tuple(self._events)

    @property
    def position(self) -> int:
        """Index of the most recently consumed event; -1 before the first."""

        return self._position

    @property
    def current(self) -> HistoryEvent | None:
        if 0 <= self._position < len(self._events):
            return self._events[self._position]
        return None

    @property
    def is_replaying(self) -> bool:
        """True while the cursor has not yet passed the previously reached point.

        Code resumed by an already-played event ran in an earlier invocation, so
        the flag follows the played marker of the most recently consumed event.
        """

        current = self.current
        if current is None:
            return self._position < self._last_played
        return current.is_played

    @property
    def has_unconsumed_played_events(self) -> bool:
        return self._position < self._last_played

    @property
    def exhausted(self) -> bool:
        return self._position >= len(self._events) - 1

    def advance(self) -> HistoryEvent | None:
        if self.exhausted:
            self._position = len(self._events)
            return None
        self._position += 1
        return self._events[self._position]

    def match_scheduled(self, event: HistoryEvent, pending: Mapping[int, Action]) -> Action:
        """Correlate a scheduling marker with the pending action of the same sequence number.

        Raises NonDeterminismError when the orchestrator did not issue an action
        with that sequence number, or issued one of a different kind or name.
        """

        action = pending.get(event.event_id)
        if action is None:
            raise NonDeterminismError(
                f"A previous execution recorded {event.event_type.value} with ID={event.event_id}, "
                f"but the current execution has no action with this ID. This happens when the "
                f"orchestrator has non-deterministic logic or its code changed after the instance "
                f"started running."
            )
        if action.scheduled_event != event.event_type:
            raise NonDeterminismError(
                f"History mismatch: a previous execution recorded {event.event_type.value} with "
                f"ID={event.event_id}, but the current execution issued {action.action_type.value} "
                f"with that ID."
            )
        expected = action.correlation_name
        if expected is not None and event.name is not None and event.name != expected:
            raise NonDeterminismError(
                f"History mismatch: a previous execution scheduled '{event.name}' with "
                f"ID={event.event_id}, but the current execution is scheduling '{expected}'."
            )
        return action
