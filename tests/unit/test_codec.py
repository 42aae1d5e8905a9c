"""
Unit tests for record encoding and result item decoding.

Tests cover:
- Owner normalization and insertion timestamps
- The persisted document layout
- Result item structure (result/forwarded/delay/original)
- Unparsable payloads
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

import pytest

from msgarchive.mam_server.archive.codec import (
    ArchivedMessage,
    Direction,
    StoredRecord,
    decode,
    encode,
)
from msgarchive.mam_server.protocol.jid import JID
from msgarchive.mam_server.protocol.namespaces import NS_DELAY, NS_FORWARD, NS_MAM
from msgarchive.mam_server.protocol.stanza import canonical, from_bytes, qname

MESSAGE = b'<message to="bob@example.org" type="chat"><body>Hello</body></message>'


class TestEncode:
    """Tests for encode()."""

    def test_owner_is_bare_and_lowercased(self):
        record = encode(
            Direction.OUTGOING,
            JID.parse("Alice@Example.ORG/Phone"),
            JID.parse("bob@example.org/laptop"),
            "Hello",
            MESSAGE,
        )
        assert record.owner == JID("alice", "example.org")
        assert record.counterpart == JID("bob", "example.org", "laptop")
        assert record.id is None

    def test_timestamp_is_insertion_time(self):
        before = datetime.now(timezone.utc)
        record = encode(
            Direction.INCOMING,
            JID.parse("alice@example.org"),
            JID.parse("bob@example.org"),
            "Hello",
            MESSAGE,
        )
        after = datetime.now(timezone.utc)
        assert before <= record.timestamp <= after

    def test_element_payload_is_serialized(self):
        packet = from_bytes(MESSAGE)
        record = encode(
            Direction.OUTGOING,
            JID.parse("alice@example.org"),
            JID.parse("bob@example.org"),
            "Hello",
            packet,
        )
        assert isinstance(record.raw_payload, bytes)
        assert canonical(from_bytes(record.raw_payload)) == canonical(packet)

    def test_document(self):
        record = encode(
            Direction.INCOMING,
            JID.parse("alice@example.org"),
            JID.parse("Bob@Example.org/Laptop"),
            "Hello",
            MESSAGE,
        )
        doc = record.to_document()
        assert doc["user"] == "alice"
        assert doc["server"] == "example.org"
        assert doc["jid"] == {"user": "bob", "server": "example.org", "resource": "Laptop"}
        assert doc["direction"] == "from"
        assert doc["body"] == "Hello"
        assert doc["raw"] == MESSAGE


class TestDecode:
    """Tests for decode()."""

    def _record(self, raw=MESSAGE):
        return StoredRecord(
            id=17,
            raw_payload=raw,
            timestamp=datetime(2014, 1, 2, 10, 0, 0, 250000, tzinfo=timezone.utc),
        )

    def test_result_structure(self):
        result = decode(self._record(), "f27")

        assert result.tag == qname(NS_MAM, "result")
        assert result.get("id") == "17"
        assert result.get("queryid") == "f27"

        forwarded = result.find(qname(NS_FORWARD, "forwarded"))
        children = list(forwarded)
        assert len(children) == 2
        assert children[0].tag == qname(NS_DELAY, "delay")
        assert children[0].get("stamp") == "2014-01-02T10:00:00Z"
        assert canonical(children[1]) == canonical(from_bytes(MESSAGE))

    def test_no_request_tag(self):
        result = decode(self._record())
        assert "queryid" not in result.attrib

    def test_unparsable_payload_is_skipped(self):
        assert decode(self._record(raw=b"<message><body>")) is None

    def test_archived_message_decodes(self):
        message = ArchivedMessage(
            owner=JID("alice", "example.org"),
            counterpart=JID("bob", "example.org"),
            direction=Direction.OUTGOING,
            body="Hello",
            timestamp=datetime(2014, 1, 2, tzinfo=timezone.utc) + timedelta(seconds=5),
            raw_payload=MESSAGE,
            id=3,
        )
        result = decode(message)
        delay = result.find(f"{qname(NS_FORWARD, 'forwarded')}/{qname(NS_DELAY, 'delay')}")
        assert result.get("id") == "3"
        assert delay.get("stamp") == "2014-01-02T00:00:05Z"

    def test_original_stanza_is_not_rewritten(self):
        raw = b'<message xmlns="jabber:client" id="m1"><body>x</body><thread>t</thread></message>'
        original = decode(self._record(raw=raw)).find(qname(NS_FORWARD, "forwarded"))[1]
        assert isinstance(original, ET.Element)
        assert canonical(original) == canonical(from_bytes(raw))

    def test_unstored_record_is_rejected(self):
        message = encode(
            Direction.OUTGOING,
            JID.parse("alice@example.org"),
            JID.parse("bob@example.org"),
            "Hello",
            MESSAGE,
        )
        with pytest.raises(ValueError):
            decode(message)
