"""Abstract base classes — boundaries to external collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseNotifier(ABC):
    """Interface for delivering a freshly issued key to its owner."""

    @abstractmethod
    async def send_key(self, owner_identity: str, secret_value: str) -> None:
        """Deliver the key. Raise ``NotificationDeliveryError`` on failure."""
        ...
