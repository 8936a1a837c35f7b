from __future__ import annotations

import uuid


def new_uuid() -> str:
    """Public identifier for API-facing rows (integer ids never leave the DB)."""
    return str(uuid.uuid4())
