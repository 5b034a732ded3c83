"""Voice provider adapter registry."""

from __future__ import annotations

from .base import SignatureError, VoiceProviderAdapter
from .bolna import BolnaAdapter
from .retell import RetellAdapter

_REGISTRY: dict[str, type[VoiceProviderAdapter]] = {}


def register_adapter(adapter: type[VoiceProviderAdapter]) -> None:
    """Register a voice provider adapter class in the global registry."""
    _REGISTRY[adapter.provider_name] = adapter


def get_adapter(name: str) -> type[VoiceProviderAdapter]:
    """Retrieve an adapter class for ``name`` or raise ``KeyError``."""
    normalized = name.lower()
    if normalized not in _REGISTRY:
        raise KeyError(f"Voice provider '{name}' is not configured")
    return _REGISTRY[normalized]


# Pre-register built-in adapters
register_adapter(RetellAdapter)
register_adapter(BolnaAdapter)

__all__ = [
    "BolnaAdapter",
    "RetellAdapter",
    "SignatureError",
    "VoiceProviderAdapter",
    "get_adapter",
    "register_adapter",
]
