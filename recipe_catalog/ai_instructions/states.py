from __future__ import annotations

from enum import Enum

from ..db.models import AIInstructionsStatus


class Event(str, Enum):
    request = "request"
    succeed = "succeed"
    fail = "fail"


class InvalidTransition(Exception):
    def __init__(self, status: AIInstructionsStatus, event: Event) -> None:
        super().__init__(f"Cannot {event.value} AI instructions while {status.value}")
        self.status = status
        self.event = event


TRANSITIONS: dict[tuple[AIInstructionsStatus, Event], AIInstructionsStatus] = {
    (AIInstructionsStatus.IDLE, Event.request): AIInstructionsStatus.PENDING,
    (AIInstructionsStatus.FAILED, Event.request): AIInstructionsStatus.PENDING,
    (AIInstructionsStatus.PENDING, Event.succeed): AIInstructionsStatus.READY,
    (AIInstructionsStatus.PENDING, Event.fail): AIInstructionsStatus.FAILED,
}


def transition(status: AIInstructionsStatus, event: Event) -> AIInstructionsStatus:
    """
    Return the status reached by applying ``event`` to ``status``.

    Reads the same table as ``edge``; raises ``InvalidTransition`` when the
    event is not allowed from ``status``.
    """
    try:
        return TRANSITIONS[(AIInstructionsStatus(status), event)]
    except KeyError:
        raise InvalidTransition(AIInstructionsStatus(status), event) from None


def edge(event: Event) -> tuple[list[AIInstructionsStatus], AIInstructionsStatus]:
    """Statuses from which ``event`` is allowed, and the status it leads to."""
    sources = [status for (status, e) in TRANSITIONS if e is event]
    (target,) = {TRANSITIONS[(status, event)] for status in sources}
    return sources, target
