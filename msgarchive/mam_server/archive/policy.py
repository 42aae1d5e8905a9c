"""
Archiving policy: which message events are kept.

Only ``<message/>`` stanzas with a non-empty ``<body/>`` are archived.
Group chat messages can be excluded per host, and owners can be opted out
by overriding ArchivePolicy.should_archive().
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable

from ..protocol.jid import JID
from ..protocol.stanza import find_child, local_name, text_of


def extract_body(packet: ET.Element, ignore_group_chats: bool) -> str | None:
    """Return the body text to archive, or None to drop the event.

    Args:
        packet: Stanza seen by the server
        ignore_group_chats: Drop ``type="groupchat"`` messages

    Returns:
        Body text, or None for presence, IQs, bodiless messages and
        (optionally) group chat messages.
    """
    if local_name(packet) != "message":
        return None

    body = find_child(packet, "body")
    if body is None:
        return None

    if ignore_group_chats and packet.get("type") == "groupchat":
        return None

    text = text_of(body)
    return text or None


class ArchivePolicy:
    """Per-host archiving policy.

    Subclass and override should_archive() for per-owner preferences.
    """

    def __init__(self, ignore_group_chats: bool = False) -> None:
        self.ignore_group_chats = ignore_group_chats

    def should_archive(self, owner: JID) -> bool:
        return True

    def extract_body(self, packet: ET.Element) -> str | None:
        return extract_body(packet, self.ignore_group_chats)


class OptOutPolicy(ArchivePolicy):
    """Archives everyone except an explicit list of bare JIDs."""

    def __init__(self, opted_out: Iterable[str], ignore_group_chats: bool = False) -> None:
        super().__init__(ignore_group_chats=ignore_group_chats)
        self.opted_out = frozenset(str(JID.parse(j).bare.lower()) for j in opted_out)

    def should_archive(self, owner: JID) -> bool:
        return str(owner.bare.lower()) not in self.opted_out
