"""Error classification for Offload-Broker."""

from __future__ import annotations


class OffloadError(Exception):
    """Base class for broker errors."""


class UnknownParticipant(OffloadError):
    """An event referenced an address the registry refuses to admit."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Unknown participant address: {address}")
        self.address = address


class CatalogFetchFailed(OffloadError):
    """The solver oracle was unreachable or answered with a malformed menu."""


class MatchingFailed(OffloadError):
    """A matching cycle hit its round ceiling; nothing was committed."""

    def __init__(self, rounds: int, pending: int) -> None:
        super().__init__(
            f"Matching did not converge after {rounds} rounds "
            f"({pending} proposers still pending)"
        )
        self.rounds = rounds
        self.pending = pending
