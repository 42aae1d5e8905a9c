"""
Archived message records and their conversion to/from result items.

Write side: an inbound message becomes an ArchivedMessage stamped with the
archive-insertion time (not the claimed send time). Read side: a stored
record is re-parsed from its raw payload and wrapped as

    <result xmlns="urn:xmpp:mam:tmp" id="{id}" queryid="{tag}">
      <forwarded xmlns="urn:xmpp:forward:0">
        <delay xmlns="urn:xmpp:delay" stamp="2014-01-02T10:00:00Z"/>
        <message .../>          (original stanza)
      </forwarded>
    </result>

Invariants:
    - raw_payload round-trips through the stanza parser
    - A record whose payload fails to parse is skipped, never an error
    - Persisted document fields: user, server, jid, body, direction, ts, raw
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..protocol.jid import JID
from ..protocol.namespaces import NS_DELAY, NS_FORWARD, NS_MAM
from ..protocol.stanza import from_bytes, qname, to_bytes
from ..protocol.timestamps import format_stamp, utcnow

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Message direction relative to the archive owner.

    Values are the persisted ``direction`` field of existing archives.
    """

    OUTGOING = "to"
    INCOMING = "from"


@dataclass(frozen=True)
class ArchivedMessage:
    """A persisted archive record.

    Attributes:
        owner: Archive identity (bare, lowercased)
        counterpart: Remote party, full JID
        direction: Outgoing or incoming
        body: Plain-text body
        timestamp: Archive insertion instant (UTC)
        raw_payload: Serialized original stanza
        id: Backend-assigned identifier, ordered like insertion (None until stored)
    """

    owner: JID
    counterpart: JID
    direction: Direction
    body: str
    timestamp: datetime
    raw_payload: bytes
    id: int | None = None

    def to_document(self) -> dict[str, Any]:
        """Render the persisted document (minus ``id`` and ``ts`` encoding)."""
        return {
            "user": self.owner.user,
            "server": self.owner.server,
            "jid": self.counterpart.to_document(),
            "body": self.body,
            "direction": self.direction.value,
            "ts": self.timestamp,
            "raw": self.raw_payload,
        }


@dataclass(frozen=True)
class StoredRecord:
    """The projection of a stored message needed to build a result item."""

    id: int
    raw_payload: bytes
    timestamp: datetime


def encode(
    direction: Direction,
    owner: JID,
    counterpart: JID,
    body: str,
    raw_payload: ET.Element | bytes,
) -> ArchivedMessage:
    """Build a storable record for a message event.

    The current instant is stamped as the record timestamp. No
    deduplication is attempted.
    """
    if isinstance(raw_payload, ET.Element):
        raw_payload = to_bytes(raw_payload)

    return ArchivedMessage(
        owner=owner.bare.lower(),
        counterpart=counterpart,
        direction=direction,
        body=body,
        timestamp=utcnow(),
        raw_payload=raw_payload,
    )


def format_id(record_id: int) -> str:
    """Render a record id as the public result/cursor id."""
    return str(record_id)


def decode(record: StoredRecord | ArchivedMessage, request_tag: str = "") -> ET.Element | None:
    """Build the result item for a stored record.

    Args:
        record: Stored record (must carry an id)
        request_tag: Query id echoed in the result, omitted when empty

    Returns:
        The ``<result/>`` element, or None if the payload does not parse.

    Raises:
        ValueError: If the record has not been stored yet.
    """
    if record.id is None:
        raise ValueError("Cannot build a result item for an unstored record")

    try:
        original = from_bytes(record.raw_payload)
    except ET.ParseError as e:
        logger.warning(
            "Skipping archived record with unparsable payload",
            extra={"record_id": record.id, "error": str(e)},
        )
        return None

    attrs = {"id": format_id(record.id)}
    if request_tag:
        attrs["queryid"] = request_tag

    result = ET.Element(qname(NS_MAM, "result"), attrs)
    forwarded = ET.SubElement(result, qname(NS_FORWARD, "forwarded"))
    ET.SubElement(
        forwarded,
        qname(NS_DELAY, "delay"),
        {"stamp": format_stamp(record.timestamp)},
    )
    forwarded.append(original)
    return result
