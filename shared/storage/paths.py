"""
Shared storage path utilities.

Canonical filesystem locations for the key-value store that holds the
channel roster, per-channel hysteresis state and cached snapshots.
"""

from __future__ import annotations

import os
from pathlib import Path

# ----------------------------------------------------------------------
# BASE DIRECTORIES
# ----------------------------------------------------------------------

# Repo root is assumed to be the current working directory
# when the service is launched (consistent with core.app)
BASE_DIR = Path.cwd()

STORAGE_DIR = BASE_DIR / "shared" / "storage"
STATE_DIR = Path(os.getenv("MULTIVIEW_STATE_DIR", str(STORAGE_DIR / "state")))


# ----------------------------------------------------------------------
# STATE PATH HELPERS
# ----------------------------------------------------------------------

def get_state_dir(override: Path | str | None = None) -> Path:
    """
    Return the directory backing the JSON key-value store.

    An explicit override (from system.json) wins over the environment
    default. The directory is created if missing.
    """

    path = Path(override) if override else STATE_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path
