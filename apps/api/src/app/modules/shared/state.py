"""
Status transition checking shared by every state machine in the pipeline.

Each axis declares a table ``{current: {allowed next states}}``. A move to
the same status is always accepted so retried writes are harmless.
"""

from collections.abc import Mapping
from enum import Enum
from typing import TypeVar

from app.core.errors import InvalidStateTransitionError

S = TypeVar("S", bound=Enum)


class InvalidStatusTransitionError(InvalidStateTransitionError):
    """Raised when a status change is not present in the axis' transition table."""

    def __init__(
        self,
        axis: str,
        current_status: Enum | None,
        new_status: Enum | None,
        valid_transitions: set | None = None,
    ):
        self.axis = axis
        self.current_status = current_status
        self.new_status = new_status
        valid = sorted(_label(s) for s in (valid_transitions or set()))
        super().__init__(
            f"Invalid {axis} transition from '{_label(current_status)}' to "
            f"'{_label(new_status)}'. Valid transitions: {valid or 'none (terminal state)'}"
        )


def _label(status: Enum | None) -> str:
    return "null" if status is None else str(status.value)


def check_transition(
    table: Mapping[S | None, set[S]],
    axis: str,
    current: S | None,
    new: S,
) -> None:
    """
    Validate ``current -> new`` against a transition table.

    Raises:
        InvalidStatusTransitionError: If the move is not allowed
    """
    if current == new:
        return

    allowed = table.get(current, set())
    if new not in allowed:
        raise InvalidStatusTransitionError(axis, current, new, allowed)
