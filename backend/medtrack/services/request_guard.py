"""Module: request_guard.

Latest-request-wins bookkeeping for list and search views. When a browser
fires a new query for the same view before the previous one came back, the
older response is dropped on arrival instead of overwriting fresher state.
Runs on a single event loop, so plain dict access is enough. State lives in
this process only; with several workers the guarantee holds per worker.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Awaitable, Hashable, TypeVar

from medtrack.core.errors import StaleResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ticket:
    scope: Hashable
    seq: int


class RequestGuard:
    def __init__(self):
        self._latest: dict[Hashable, int] = {}
        self._counter = itertools.count(1)

    def begin(self, scope: Hashable) -> Ticket:
        ticket = Ticket(scope, next(self._counter))
        self._latest[scope] = ticket.seq
        return ticket

    def is_current(self, ticket: Ticket) -> bool:
        return self._latest.get(ticket.scope) == ticket.seq

    def release(self, ticket: Ticket) -> None:
        if self.is_current(ticket):
            del self._latest[ticket.scope]

    def finish(self, ticket: Ticket, result: T) -> T:
        if not self.is_current(ticket):
            logger.info("Discarding superseded response for %s (request #%s)", ticket.scope, ticket.seq)
            raise StaleResponse("Superseded by a newer request", stale=True)
        self.release(ticket)
        return result

    async def run(self, scope: Hashable, awaitable: Awaitable[T]) -> T:
        ticket = self.begin(scope)
        try:
            result = await awaitable
        except BaseException:
            self.release(ticket)
            raise
        return self.finish(ticket, result)

    def __len__(self) -> int:
        return len(self._latest)
