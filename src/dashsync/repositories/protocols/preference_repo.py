"""Preference repository protocol for durable client state."""

from typing import Optional, Protocol


class PreferenceRepository(Protocol):
    """Interface for a durable key-value store that survives sessions."""

    def get(self, key: str) -> Optional[str]:
        """Get the stored value for key, or None."""
        ...

    def set(self, key: str, value: str) -> None:
        """Insert or update the value for key."""
        ...

    def delete(self, key: str) -> None:
        """Remove key if present."""
        ...
