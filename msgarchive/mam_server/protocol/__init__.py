"""
Protocol helpers for the archive server.

This module provides the small set of XMPP primitives the archive core
relies on:
- JID parsing and the persisted ``jid`` sub-document
- XEP-0082 timestamp parsing and delay stamp formatting
- ElementTree helpers for namespaced stanzas and stanza errors

Parsing of the surrounding stream and stanza envelope is left to the
hosting server.
"""

from .jid import JID, InvalidJID
from .namespaces import NS_CLIENT, NS_DELAY, NS_FORWARD, NS_MAM, NS_RSM, NS_STANZAS
from .timestamps import format_stamp, from_micros, parse_datetime, to_micros

__all__ = [
    "JID",
    "InvalidJID",
    "NS_CLIENT",
    "NS_DELAY",
    "NS_FORWARD",
    "NS_MAM",
    "NS_RSM",
    "NS_STANZAS",
    "format_stamp",
    "from_micros",
    "parse_datetime",
    "to_micros",
]
