"""
Jabber identifiers.

A JID is ``[user@]server[/resource]``. The archive keys everything on the
lowercased user and server of the owner, and persists the counterpart as
a ``{"user", "server"[, "resource"]}`` sub-document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class InvalidJID(ValueError):
    """Text could not be parsed as a JID."""

    pass


@dataclass(frozen=True)
class JID:
    """A parsed Jabber identifier.

    Attributes:
        user: Local part (may be empty for server JIDs)
        server: Domain part (never empty)
        resource: Resource part (may be empty)
    """

    user: str
    server: str
    resource: str = ""

    @classmethod
    def parse(cls, text: str) -> JID:
        """Parse ``user@server/resource``.

        Raises:
            InvalidJID: If the domain is empty or a separator is misplaced.
        """
        if not text:
            raise InvalidJID("Empty JID")

        rest, sep, resource = text.partition("/")
        if sep and not resource:
            raise InvalidJID(f"Empty resource in JID: {text!r}")

        user, at, server = rest.rpartition("@")
        if at and not user:
            raise InvalidJID(f"Empty user in JID: {text!r}")
        if not server:
            raise InvalidJID(f"Empty domain in JID: {text!r}")
        if "@" in user:
            raise InvalidJID(f"Multiple '@' in JID: {text!r}")

        return cls(user=user, server=server, resource=resource)

    @property
    def bare(self) -> JID:
        """This JID without its resource."""
        return JID(self.user, self.server)

    def lower(self) -> JID:
        """Lowercase user and server; the resource is case sensitive."""
        return JID(self.user.lower(), self.server.lower(), self.resource)

    def to_document(self) -> dict[str, Any]:
        """Render the persisted ``jid`` sub-document."""
        jid = self.lower()
        doc = {"user": jid.user, "server": jid.server}
        if jid.resource:
            doc["resource"] = jid.resource
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> JID:
        """Inverse of to_document()."""
        return cls(doc.get("user", ""), doc["server"], doc.get("resource", ""))

    def __str__(self) -> str:
        text = f"{self.user}@{self.server}" if self.user else self.server
        if self.resource:
            text = f"{text}/{self.resource}"
        return text
