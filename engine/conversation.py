"""Conversation state — per-contact sliding window of turns.

The system prompt is not stored here; the completion client injects it
fresh on every call.
"""

import asyncio
import logging

from .types import Turn, assistant_turn, user_turn

log = logging.getLogger("conversation")

MAX_TURNS = 10  # Keep last N turns (5 user + assistant pairs)


class ConversationStore:
    """In-memory history for every contact, bounded per contact.

    Contacts are never evicted, only their turns are. Same-contact
    exchanges should run under lock_for(contact) so that the
    read-complete-append sequence is not interleaved.
    """

    def __init__(self, max_turns: int = MAX_TURNS):
        if max_turns < 2:
            raise ValueError(f"max_turns must hold at least one exchange, got {max_turns}")
        self.max_turns = max_turns
        self._turns: dict[str, list[Turn]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_history(self, contact: str) -> list[Turn]:
        """Return a copy of the contact's turns, oldest first."""
        return list(self._turns.get(contact, ()))

    def append(self, contact: str, user_message: str, assistant_response: str) -> None:
        """Add one exchange and drop the oldest whole exchanges past max_turns."""
        turns = self._turns.setdefault(contact, [])
        turns.append(user_turn(user_message))
        turns.append(assistant_turn(assistant_response))
        if len(turns) > self.max_turns:
            overflow = len(turns) - self.max_turns
            dropped = overflow + overflow % 2  # history always opens on a user turn
            del turns[:dropped]
            log.debug("Trimmed %d old turn(s) for %s", dropped, contact)

    def active_contact_count(self) -> int:
        return sum(1 for turns in self._turns.values() if turns)

    def clear(self, contact: str) -> None:
        """Forget one contact's history."""
        self._turns.pop(contact, None)

    def lock_for(self, contact: str) -> asyncio.Lock:
        """Per-contact critical section for read-modify-write sequences."""
        lock = self._locks.get(contact)
        if lock is None:
            lock = self._locks[contact] = asyncio.Lock()
        return lock
