"""Mediarr discovery service package."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["app", "create_app"]


def __getattr__(name: str) -> Any:
    # Importing the FastAPI app eagerly would load settings on every import.
    if name in __all__:
        module = import_module("mediarr.main")
        return getattr(module, name)
    raise AttributeError(f"module 'mediarr' has no attribute {name}")
