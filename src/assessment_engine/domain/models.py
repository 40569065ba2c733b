"""Domain models for assessment owners."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProfileRecord:
    """Durable profile of an owner, independent of any session."""

    owner_id: str
    tests_remaining: int
    tests_taken: int
