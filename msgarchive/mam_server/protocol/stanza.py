"""
Stanza helpers on top of ElementTree.

ElementTree spells qualified names as ``{namespace}local``. Stanzas handed
to the archive may or may not carry the ``jabber:client`` namespace, so
element dispatch always goes through local_name().
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

from ..errors import FaultKind
from .namespaces import NS_STANZAS


def qname(ns: str, name: str) -> str:
    """Build an ElementTree qualified name."""
    return f"{{{ns}}}{name}"


def local_name(el: ET.Element) -> str:
    """Element name without its namespace."""
    tag = el.tag
    if isinstance(tag, str) and tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def namespace(el: ET.Element) -> str:
    """Element namespace, or the literal ``xmlns`` attribute, or ''."""
    tag = el.tag
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return el.get("xmlns", "")


def find_child(el: ET.Element, name: str) -> ET.Element | None:
    """First direct child with the given local name."""
    for child in el:
        if local_name(child) == name:
            return child
    return None


def text_of(el: ET.Element) -> str:
    """Character data directly inside an element."""
    parts = [el.text or ""]
    for child in el:
        parts.append(child.tail or "")
    return "".join(parts)


def to_bytes(el: ET.Element) -> bytes:
    return ET.tostring(el, encoding="utf-8", xml_declaration=False)


def from_bytes(raw: bytes) -> ET.Element:
    """Parse a serialized element.

    Raises:
        ET.ParseError: If raw is not well-formed XML.
    """
    return ET.fromstring(raw)


def to_text(el: ET.Element) -> str:
    return ET.tostring(el, encoding="unicode")


def canonical(el: ET.Element) -> str:
    """Canonical (C14N 2.0) form, for structural comparison."""
    return ET.canonicalize(to_text(el))


def error_element(kind: FaultKind, text: str | None = None) -> ET.Element:
    """Build a stanza ``<error/>`` child for a fault.

    Example:
        <error type="modify">
          <policy-violation xmlns="urn:ietf:params:xml:ns:xmpp-stanzas"/>
          <text xmlns="urn:ietf:params:xml:ns:xmpp-stanzas">Too many results</text>
        </error>
    """
    error = ET.Element("error", {"type": kind.error_type})
    ET.SubElement(error, qname(NS_STANZAS, kind.value))
    if text:
        ET.SubElement(error, qname(NS_STANZAS, "text")).text = text
    return error
