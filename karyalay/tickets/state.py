from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle.

    Any status may move to any other; only CLOSED carries behaviour (replies are refused).
    """

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_ON_CUSTOMER = "WAITING_ON_CUSTOMER"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return cls.OPEN

    @classmethod
    def parse(cls, value: str | TicketStatus) -> TicketStatus:
        if isinstance(value, TicketStatus):
            return value
        return cls(str(value).strip().upper())

    @classmethod
    def choices(cls) -> str:
        return ", ".join(status.value for status in cls)


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @classmethod
    def parse(cls, value: str | TicketPriority) -> TicketPriority:
        if isinstance(value, TicketPriority):
            return value
        return cls(str(value).strip().upper())

    @classmethod
    def choices(cls) -> str:
        return ", ".join(priority.value for priority in cls)


class AuthorType(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: str | AuthorType) -> AuthorType:
        if isinstance(value, AuthorType):
            return value
        return cls(str(value).strip().upper())
