# modules/job_ingest/lib/sources/__init__.py
from __future__ import annotations

from .base import SourceProfile
from .builtin import BUILTIN
from .registry import all_sources, get, register

__all__ = [
    "BUILTIN",
    "SourceProfile",
    "all_sources",
    "get",
    "register",
]
