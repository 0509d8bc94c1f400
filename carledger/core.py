"""Core primitives for carledger.

Shared helpers used throughout the package:
- JSON loading with consistent encoding
- Canonical JSON serialization for digests
- Location of the bundled JSON Schemas
- Timestamp helpers
"""

from __future__ import annotations

import json
import pathlib
from datetime import datetime, timezone
from typing import Any, Optional

# Package root, computed once at module load
PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent

SCHEMAS_DIR = PACKAGE_ROOT / "schemas"


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Keys sorted, no whitespace, UTF-8. Used for event digests so the same
    event content always hashes the same way.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def to_iso8601(ts: datetime) -> str:
    """Render a timestamp the way ledger output carries it (UTC, millisecond precision)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso8601(timestamp: str) -> Optional[datetime]:
    """Parse ISO8601 timestamp string."""
    try:
        s = timestamp.replace("Z", "+00:00")
        return datetime.fromisoformat(s)
    except (ValueError, AttributeError):
        return None
