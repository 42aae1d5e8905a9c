"""
Unit tests for JID parsing.

Tests cover:
- Parsing user/server/resource forms
- Rejection of malformed JIDs
- The persisted jid sub-document
"""

import pytest

from msgarchive.mam_server.protocol.jid import JID, InvalidJID


class TestJidParse:
    """Tests for JID.parse."""

    def test_full_jid(self):
        """Parse user@server/resource."""
        jid = JID.parse("alice@example.org/phone")
        assert jid.user == "alice"
        assert jid.server == "example.org"
        assert jid.resource == "phone"

    def test_bare_jid(self):
        """Parse user@server."""
        jid = JID.parse("alice@example.org")
        assert jid == JID("alice", "example.org")

    def test_server_jid(self):
        """Domain-only JIDs have no user."""
        jid = JID.parse("example.org")
        assert jid.user == ""
        assert str(jid) == "example.org"

    def test_resource_may_contain_slash_and_at(self):
        """Everything after the first slash is the resource."""
        jid = JID.parse("alice@example.org/a/b@c")
        assert jid.resource == "a/b@c"

    @pytest.mark.parametrize(
        "text",
        ["", "@example.org", "alice@", "alice@example.org/", "a@b@example.org"],
    )
    def test_malformed(self, text):
        """Malformed JIDs are rejected."""
        with pytest.raises(InvalidJID):
            JID.parse(text)

    def test_str_round_trip(self):
        """str() renders the parsed form."""
        assert str(JID.parse("bob@example.org/laptop")) == "bob@example.org/laptop"


class TestJidDocument:
    """Tests for the jid sub-document."""

    def test_bare_and_lower(self):
        """bare drops the resource; lower keeps resource case."""
        jid = JID.parse("Alice@Example.ORG/Phone")
        assert jid.bare == JID("Alice", "Example.ORG")
        assert jid.lower() == JID("alice", "example.org", "Phone")

    def test_document_with_resource(self):
        """Resource is present in the document when set."""
        doc = JID.parse("Bob@Example.org/Laptop").to_document()
        assert doc == {"user": "bob", "server": "example.org", "resource": "Laptop"}

    def test_document_without_resource(self):
        """Resource key is omitted for bare JIDs."""
        doc = JID.parse("bob@example.org").to_document()
        assert doc == {"user": "bob", "server": "example.org"}
        assert JID.from_document(doc) == JID("bob", "example.org")
