"""Error taxonomy shared by the core loop and its adapters.

Adapters translate library exceptions into these types at their boundary so
the dispatch loop can decide what is per-candidate and what aborts a cycle.
"""

from __future__ import annotations


class BidscopeError(Exception):
    """Base class for every error raised on purpose by bidscope."""


class TransientFetchError(BidscopeError):
    """The feed could not be reached, timed out, or answered with non-2xx."""


class MalformedResponseError(BidscopeError):
    """The feed answered, but not in the shape we expect."""


class SendError(BidscopeError):
    """The messaging channel rejected the message or did not answer in time."""


class PersistenceError(BidscopeError):
    """The dedupe store could not be read or written."""
