"""
Message Archive Server - durable per-user message history with paged queries.

This package archives message traffic for the users of one or more served
domains and answers time-filtered, paginated history queries (XEP-0313
style, namespace ``urn:xmpp:mam:tmp``).

Architecture:
    ┌──────────────┐   events    ┌──────────────┐   insert   ┌──────────────┐
    │ XMPP server  │────────────▶│ ArchiveActor │───────────▶│ ArchiveStore │
    │  (hooks/IQ)  │   queries   │  (per host)  │    find    │   (SQLite)   │
    └──────────────┘────────────▶└──────┬───────┘◀───────────└──────────────┘
            ▲                           │ page
            │        result items       ▼
            └────────────────────── Emission task

Invariants:
    - One actor per served domain; writes and queries for that domain are
      processed one at a time, in mailbox order
    - Archiving is best effort and never blocks message delivery
    - A query yields either a page of result items or exactly one fault
    - The persisted ``messages`` layout is a versioned contract

How to change safely:
    - Bump SCHEMA_VERSION in archive/store.py for any column change
    - Keep the protocol namespaces stable; clients key on them
"""

from ._version import __version__

__all__ = ["__version__"]
