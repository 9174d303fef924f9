"""Client-side id generation."""

from __future__ import annotations

import uuid


def new_id(prefix: str) -> str:
    """Generate an opaque id such as ``board-3f2a9c1b7d4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"
