"""Data model for the profiles table (identity fields only)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Profile:
    id: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
