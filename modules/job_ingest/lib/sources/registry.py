from __future__ import annotations

from .base import SourceProfile

# Global in-process registry: source name -> profile
_REGISTRY: dict[str, SourceProfile] = {}


def register(profile: SourceProfile) -> SourceProfile:
    """
    Register a source profile under its name.
    Requires profile.name to be a non-empty string.
    """
    name = (profile.name or "").strip()
    if not name:
        raise ValueError(f"Cannot register source {profile!r}: missing/empty 'name'.")
    key = name.lower()
    if key in _REGISTRY and _REGISTRY[key] != profile:
        # Allow idempotent re-registers of the same profile; otherwise reject.
        raise ValueError(f"Source {key!r} already registered.")
    _REGISTRY[key] = profile
    return profile


def get(name: str) -> SourceProfile:
    """
    Look up a source profile by name (case-insensitive).
    Raises KeyError if not found.
    """
    key = (name or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No source registered for {name!r}.")
    return _REGISTRY[key]


def all_sources() -> dict[str, SourceProfile]:
    """
    Return a shallow copy of the registry (useful for debugging/tests).
    """
    return dict(_REGISTRY)
