"""Repository protocol definitions (interfaces)."""

from dashsync.repositories.protocols.preference_repo import PreferenceRepository

__all__ = [
    "PreferenceRepository",
]
