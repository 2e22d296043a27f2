"""Bookkeeping of the calls and notifications in flight on a connection."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from .wire import RequestID, WireError

if TYPE_CHECKING:
    from .calls import AsyncCall


def _wrap(closing: BaseException, detail: BaseException) -> BaseException:
    message = f"{closing}: {detail}"
    error: BaseException
    if isinstance(closing, WireError):
        error = WireError(closing.code, message)
    else:
        error = RuntimeError(message)
    error.__cause__ = closing
    return error


@dataclass
class InFlightState:
    """The incoming and outgoing work of a connection, guarded by its lock."""

    conn_closing: bool = False
    reading: bool = False
    read_error: Optional[BaseException] = None
    write_error: Optional[BaseException] = None
    closer: Any = None
    close_error: Optional[BaseException] = None
    outgoing_calls: dict[RequestID, "AsyncCall"] = field(default_factory=dict)
    outgoing_notifications: int = 0
    incoming: int = 0
    incoming_by_id: dict[RequestID, Any] = field(default_factory=dict)
    handler_queue: deque = field(default_factory=deque)
    handler_running: bool = False

    def idle(self) -> bool:
        """Report whether no calls, notifications or handler work are pending."""
        return (
            not self.outgoing_calls
            and self.outgoing_notifications == 0
            and self.incoming == 0
            and not self.handler_running
        )

    def shutting_down(self, closing_error: BaseException) -> BaseException | None:
        """Return an error matching ``closing_error`` if new work must be refused, else None."""
        if self.conn_closing:
            return closing_error
        if self.read_error is not None:
            return _wrap(closing_error, self.read_error)
        if self.write_error is not None:
            return _wrap(closing_error, self.write_error)
        return None