# govision/ids.py
from ulid import ULID


def new_job_id() -> str:
    """26-char Crockford base32 ULID; lexical order follows creation time."""
    return str(ULID())
