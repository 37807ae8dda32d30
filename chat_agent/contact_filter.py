"""Contact allow/block filter."""

from __future__ import annotations

from typing import Iterable


class ContactFilter:
    """Decides whether a sender's messages get processed.

    The blocklist always wins. An empty allowlist means no restriction.
    Both lists are fixed for the lifetime of the filter.
    """

    def __init__(self, allowed: Iterable[str] = (), blocked: Iterable[str] = ()) -> None:
        self.allowed = frozenset(allowed)
        self.blocked = frozenset(blocked)

    def is_blocked(self, contact: str) -> bool:
        return contact in self.blocked

    def is_allowed(self, contact: str) -> bool:
        if not self.allowed:
            return True
        return contact in self.allowed

    def is_permitted(self, contact: str) -> bool:
        return not self.is_blocked(contact) and self.is_allowed(contact)
