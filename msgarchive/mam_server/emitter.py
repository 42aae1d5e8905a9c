"""
Outbound emission interface.

The archive core never routes stanzas itself. It hands each result item,
or a single fault, to an Emitter supplied by the hosting server.

Invariants:
    - emit() is called once per result item, in page order
    - emit_fault() is called at most once per query, and never together
      with emit() for the same query
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .errors import FaultKind
from .protocol.jid import JID
from .protocol.stanza import error_element, to_text

logger = logging.getLogger(__name__)


@runtime_checkable
class Emitter(Protocol):
    """Routes archive output back to requesters."""

    async def emit(self, to: JID, sender: JID, item: ET.Element) -> None:
        """Deliver one result item stanza."""
        ...

    async def emit_fault(
        self,
        to: JID,
        sender: JID,
        kind: FaultKind,
        detail: str | None = None,
    ) -> None:
        """Deliver a terminal fault for a query."""
        ...


class LoggingEmitter:
    """Emitter that only logs what would be sent.

    Used when the server runs without a routing layer attached.
    """

    async def emit(self, to: JID, sender: JID, item: ET.Element) -> None:
        logger.info(
            "Result item",
            extra={"to": str(to), "from": str(sender), "stanza": to_text(item)},
        )

    async def emit_fault(
        self,
        to: JID,
        sender: JID,
        kind: FaultKind,
        detail: str | None = None,
    ) -> None:
        logger.info(
            "Query fault",
            extra={
                "to": str(to),
                "from": str(sender),
                "stanza": to_text(error_element(kind, detail)),
            },
        )


@dataclass
class EmittedFault:
    to: JID
    sender: JID
    kind: FaultKind
    detail: str | None


@dataclass
class CollectingEmitter:
    """Emitter that keeps everything in memory.

    Attributes:
        items: (to, sender, item) tuples in emission order
        faults: Emitted faults in order
    """

    items: list[tuple[JID, JID, ET.Element]] = field(default_factory=list)
    faults: list[EmittedFault] = field(default_factory=list)

    async def emit(self, to: JID, sender: JID, item: ET.Element) -> None:
        self.items.append((to, sender, item))

    async def emit_fault(
        self,
        to: JID,
        sender: JID,
        kind: FaultKind,
        detail: str | None = None,
    ) -> None:
        self.faults.append(EmittedFault(to, sender, kind, detail))

    @property
    def stanzas(self) -> list[ET.Element]:
        return [item for _, _, item in self.items]
