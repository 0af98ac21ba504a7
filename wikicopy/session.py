"""As-you-type search state for one user interaction.

Input is debounced: a search is issued only after the input has been quiet
for ``delay`` seconds. Each issued search gets a ticket; a completion that
arrives after a newer search was issued is dropped.
"""

import logging
import time
from dataclasses import dataclass

from wikicopy import config
from wikicopy.models import SearchState
from wikicopy.resolver import resolve


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchTicket:
    seq: int
    query: str


class SearchSession:

    def __init__(self, resolve_fn=resolve, delay=config.SEARCH_DEBOUNCE_SECONDS, clock=time.monotonic):
        self.delay = delay
        self.state = SearchState()
        self._resolve = resolve_fn
        self._clock = clock
        self._pending = None
        self._deadline = None
        self._seq = 0

    @property
    def pending(self):
        return self._pending is not None

    def type(self, text, now=None):
        now = self._clock() if now is None else now
        text = text or ''

        if len(text.strip()) < config.MIN_QUERY_LENGTH:
            self._pending = None
            self._deadline = None
            # whatever is in flight belongs to input the user has since cleared
            self._seq += 1
            self.state = SearchState(query=text)
            return

        self._pending = text
        self._deadline = now + self.delay

    def poll(self, now=None):
        if self._pending is None:
            return False
        now = self._clock() if now is None else now
        if now < self._deadline:
            return False

        query = self._pending
        self._pending = None
        self._deadline = None
        ticket = self.begin(query)
        self.complete(ticket, self._resolve(query))
        return True

    def begin(self, query):
        self._seq += 1
        return SearchTicket(seq=self._seq, query=query)

    def complete(self, ticket, candidates):
        if ticket.seq != self._seq:
            logger.debug(f'Dropping stale results for {ticket.query!r}')
            return False
        self.state = SearchState(query=ticket.query, candidates=tuple(candidates))
        return True
