"""Shared data types for the completion engine."""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation, tagged with its speaker role."""
    role: Role
    content: str

    def to_message(self) -> dict:
        """Wire format for the chat-completions API."""
        return {"role": self.role.value, "content": self.content}


def system_turn(content: str) -> Turn:
    return Turn(Role.SYSTEM, content)


def user_turn(content: str) -> Turn:
    return Turn(Role.USER, content)


def assistant_turn(content: str) -> Turn:
    return Turn(Role.ASSISTANT, content)
