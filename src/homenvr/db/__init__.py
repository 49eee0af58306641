"""Database abstraction layer for SQLite and PostgreSQL support.

- UTCDateTime: tz-aware timestamps that round-trip on both dialects
- DialectHelper: upserts, retryable-error detection, engine settings
- create_async_engine_for_dsn: engine factory with the async driver applied
"""

from homenvr.db.dialect import DialectHelper, detect_dialect_from_dsn
from homenvr.db.engine import create_async_engine_for_dsn
from homenvr.db.types import UTCDateTime

__all__ = [
    "DialectHelper",
    "UTCDateTime",
    "create_async_engine_for_dsn",
    "detect_dialect_from_dsn",
]
