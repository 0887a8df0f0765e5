"""Repository layer - durable client state abstractions and implementations."""

from dashsync.repositories.protocols import PreferenceRepository

__all__ = [
    "PreferenceRepository",
]
