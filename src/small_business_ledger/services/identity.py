"""Identity collaborator: who is acting on the ledger."""

from abc import ABC, abstractmethod

from small_business_ledger.exceptions import UnauthenticatedError


class IdentityProvider(ABC):
    @abstractmethod
    def current_user_id(self) -> str | None:
        """Opaque id of the signed-in user, or None when unauthenticated."""

    def current_user_label(self) -> str:
        """Human-readable name recorded on audit events and locks."""
        return self.current_user_id() or "anonymous"

    def require_user(self) -> str:
        user_id = self.current_user_id()
        if not user_id:
            raise UnauthenticatedError()
        return user_id


class StaticIdentity(IdentityProvider):
    """Fixed identity for the CLI and tests."""

    def __init__(self, user_id: str | None, label: str | None = None) -> None:
        self._user_id = user_id
        self._label = label

    def current_user_id(self) -> str | None:
        return self._user_id

    def current_user_label(self) -> str:
        return self._label or super().current_user_label()
