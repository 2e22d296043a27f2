"""User identities for authenticated and anonymous callers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class User(ABC):
    """A caller, with its authentication status and name."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Report whether the user is authenticated."""

    @abstractmethod
    def user_name(self) -> str:
        """Return the user's name; empty for anonymous users."""


@dataclass(frozen=True)
class UnauthenticatedUser(User):
    """An anonymous user: never authenticated, with an empty name."""

    def is_authenticated(self) -> bool:
        return False

    def user_name(self) -> str:
        return ""