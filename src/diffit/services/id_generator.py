"""Prefixed ID generation utility."""

import uuid

PROJECT_PREFIX = "proj_"
BUILD_PREFIX = "bld_"
SNAPSHOT_PREFIX = "snap_"
BASELINE_PREFIX = "bsl_"
POINTER_PREFIX = "bptr_"


def generate_id(prefix: str) -> str:
    """Generate a prefixed unique ID.

    Args:
        prefix: The prefix (e.g., "proj_", "bld_", "snap_").

    Returns:
        A string like "snap_a1b2c3d4e5f6a7b8".
    """
    short_uuid = uuid.uuid4().hex[:16]
    return f"{prefix}{short_uuid}"
