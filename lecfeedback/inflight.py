"""
One outstanding operation per target, and stale-response suppression.

The coordination key is the batch id for deletes and the BatchKey for
uploads (no batch id exists before the upload). A response is applied
only if its target still matches what the user currently has selected.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ticket:
    target: Hashable
    serial: int


class InFlightGuard:
    def __init__(self) -> None:
        self._outstanding: dict[Hashable, int] = {}
        self._serials = itertools.count(1)

    def outstanding(self, target: Hashable) -> bool:
        return target in self._outstanding

    def begin(self, target: Hashable) -> Optional[Ticket]:
        """
        Reserve the target. Returns None if an operation on it is still running.
        """
        if target in self._outstanding:
            logger.info("Operation for %r already in flight, not starting another", target)
            return None
        ticket = Ticket(target=target, serial=next(self._serials))
        self._outstanding[target] = ticket.serial
        return ticket

    def finish(self, ticket: Ticket, current_target: Optional[Hashable]) -> bool:
        """
        Release the ticket. Returns True if the result should be applied,
        False if the selection moved on while the call was running.
        """
        if self._outstanding.get(ticket.target) == ticket.serial:
            del self._outstanding[ticket.target]
        if current_target != ticket.target:
            logger.info("Ignoring stale response for %r (current target: %r)", ticket.target, current_target)
            return False
        return True
