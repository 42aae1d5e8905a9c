"""
Archive module - storage and query engine.

This module handles:
- Archiving policy (which message events are kept)
- Record encoding and result item decoding
- Query constraint parsing and result windowing
- The per-domain SQLite store and its connection pool
- The per-domain actor serializing writes and queries

Invariants:
    - Records are immutable once written
    - Result pages follow storage (insertion) order
    - Queries without an honored max never exceed MAX_QUERY_LIMIT records;
      they fail with a policy violation instead

How to change safely:
    - Keep the persisted document layout backward compatible
    - Test query scenarios against the actor, not only the parser
"""

from .actor import ArchiveActor, MessageEvent, QueryOutcome, QueryRequest
from .codec import ArchivedMessage, Direction, StoredRecord
from .policy import ArchivePolicy, OptOutPolicy, extract_body
from .pool import POOL_SIZE, ConnectionPool
from .query import (
    MAX_QUERY_LIMIT,
    Limit,
    PagingCursor,
    ParsedQuery,
    QueryFilter,
    effective_limit,
    parse_query,
)
from .store import SCHEMA_VERSION, ArchiveStore, WriteConcern, build_query
from .window import ResultPage, ResultWindow

__all__ = [
    "ArchiveActor",
    "MessageEvent",
    "QueryOutcome",
    "QueryRequest",
    "ArchivedMessage",
    "Direction",
    "StoredRecord",
    "ArchivePolicy",
    "OptOutPolicy",
    "extract_body",
    "POOL_SIZE",
    "ConnectionPool",
    "MAX_QUERY_LIMIT",
    "Limit",
    "PagingCursor",
    "ParsedQuery",
    "QueryFilter",
    "effective_limit",
    "parse_query",
    "SCHEMA_VERSION",
    "ArchiveStore",
    "WriteConcern",
    "build_query",
    "ResultPage",
    "ResultWindow",
]
