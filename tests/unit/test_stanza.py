"""
Unit tests for ElementTree stanza helpers.
"""

import xml.etree.ElementTree as ET

import pytest

from msgarchive.mam_server.errors import FaultKind
from msgarchive.mam_server.protocol.namespaces import NS_CLIENT, NS_RSM, NS_STANZAS
from msgarchive.mam_server.protocol.stanza import (
    canonical,
    error_element,
    find_child,
    from_bytes,
    local_name,
    namespace,
    qname,
    text_of,
    to_bytes,
)


class TestNames:
    """Tests for namespace-aware name helpers."""

    def test_local_name_strips_namespace(self):
        el = ET.Element(qname(NS_CLIENT, "message"))
        assert local_name(el) == "message"
        assert namespace(el) == NS_CLIENT

    def test_unqualified(self):
        el = ET.Element("message")
        assert local_name(el) == "message"
        assert namespace(el) == ""

    def test_literal_xmlns_attribute(self):
        """Elements built by hand may carry xmlns as a plain attribute."""
        el = ET.Element("set", {"xmlns": NS_RSM})
        assert namespace(el) == NS_RSM

    def test_parsed_default_namespace(self):
        el = from_bytes(f'<set xmlns="{NS_RSM}"><max>5</max></set>'.encode())
        assert namespace(el) == NS_RSM
        assert local_name(find_child(el, "max")) == "max"


class TestContent:
    """Tests for child lookup and text extraction."""

    def test_find_child_first_match(self):
        el = from_bytes(b"<message><body>one</body><body>two</body></message>")
        assert find_child(el, "body").text == "one"
        assert find_child(el, "subject") is None

    def test_text_of_ignores_child_text(self):
        el = from_bytes(b"<body>hello <b>bold</b> world</body>")
        assert text_of(el) == "hello  world"

    def test_text_of_empty(self):
        assert text_of(ET.Element("body")) == ""

    def test_from_bytes_rejects_garbage(self):
        with pytest.raises(ET.ParseError):
            from_bytes(b"<message><body>")

    def test_bytes_round_trip(self):
        el = from_bytes(b'<message to="bob@example.org"><body>hi</body></message>')
        assert canonical(from_bytes(to_bytes(el))) == canonical(el)


class TestErrorElement:
    """Tests for stanza error construction."""

    def test_policy_violation(self):
        error = error_element(FaultKind.POLICY_VIOLATION, "Too many results")
        assert error.get("type") == "modify"
        assert error.find(qname(NS_STANZAS, "policy-violation")) is not None
        assert error.find(qname(NS_STANZAS, "text")).text == "Too many results"

    def test_without_text(self):
        error = error_element(FaultKind.SERVICE_UNAVAILABLE)
        assert error.get("type") == "cancel"
        assert error.find(qname(NS_STANZAS, "text")) is None
