"""
Archive service - the surface a hosting XMPP server registers against.

The service owns one ArchiveActor per served domain and exposes the entry
points a server wires into its send/receive hooks, IQ dispatch and service
discovery:

    user_send_packet     outgoing message, archived for the sender
    user_receive_packet  incoming message, archived for the recipient
    process_iq           history query (urn:xmpp:mam:tmp)
    disco_features       advertises the archive namespace

The service holds no global state; the hosting server decides when to call
start() and stop().

Invariants:
    - Events and queries are routed by the owner's domain
    - Events for unserved domains are ignored
    - Queries from unserved domains are refused with not-allowed
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Any

from .archive import (
    ArchiveActor,
    ArchivePolicy,
    ArchiveStore,
    Direction,
    MessageEvent,
    OptOutPolicy,
    QueryOutcome,
    QueryRequest,
    ResultWindow,
)
from .config import ServerConfig
from .emitter import Emitter, LoggingEmitter
from .errors import FaultKind
from .protocol.jid import JID
from .protocol.namespaces import NS_MAM
from .protocol.stanza import local_name

logger = logging.getLogger(__name__)

CAPABILITY = NS_MAM


def default_policy(config: ServerConfig) -> ArchivePolicy:
    """Build the archiving policy described by the configuration."""
    if config.archive.opt_out:
        return OptOutPolicy(
            config.archive.opt_out,
            ignore_group_chats=config.archive.ignore_group_chats,
        )
    return ArchivePolicy(ignore_group_chats=config.archive.ignore_group_chats)


class ArchiveService:
    """Per-domain archive actors behind a single registration surface.

    Example:
        >>> service = ArchiveService(ServerConfig.from_env(), emitter=router)
        >>> await service.start()
        >>> service.user_send_packet(alice, bob, message)
        >>> outcome = await service.process_iq(alice, server, query)
        >>> await service.stop()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        emitter: Emitter | None = None,
        policy: ArchivePolicy | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Server configuration
            emitter: Default emitter for results and faults
            policy: Archiving policy shared by all domains
        """
        self.config = config or ServerConfig()
        self.emitter = emitter or LoggingEmitter()
        self.policy = policy or default_policy(self.config)
        self.actors: dict[str, ArchiveActor] = {}

    @property
    def hosts(self) -> tuple[str, ...]:
        return tuple(h.lower() for h in self.config.archive.hosts)

    def serves(self, host: str) -> bool:
        return host.lower() in self.actors

    async def start(self) -> None:
        """Start one actor per served domain."""
        storage = self.config.storage
        for host in self.hosts:
            if host in self.actors:
                continue

            store = ArchiveStore(
                data_dir=storage.data_dir,
                host=host,
                pool_size=storage.pool_size,
                acquire_timeout_ms=storage.acquire_timeout_ms,
                wal_mode=storage.wal_mode,
                busy_timeout_ms=storage.busy_timeout_ms,
                db_pattern=storage.db_pattern,
            )
            actor = ArchiveActor(
                host,
                store,
                policy=self.policy,
                emitter=self.emitter,
                window=ResultWindow(cap=self.config.archive.max_query_limit),
            )
            await actor.start()
            self.actors[host] = actor

        logger.info("Archive service started", extra={"hosts": list(self.actors)})

    async def stop(self) -> None:
        """Stop all actors, letting queued work and emissions finish."""
        actors = list(self.actors.values())
        self.actors.clear()
        await asyncio.gather(*(actor.stop() for actor in actors))
        logger.info("Archive service stopped")

    def actor_for(self, host: str) -> ArchiveActor | None:
        return self.actors.get(host.lower())

    def user_send_packet(self, from_jid: JID, to_jid: JID, packet: ET.Element) -> None:
        """Send hook: archive an outgoing message for the sender."""
        self._submit(MessageEvent(Direction.OUTGOING, from_jid, to_jid, packet))

    def user_receive_packet(self, from_jid: JID, to_jid: JID, packet: ET.Element) -> None:
        """Receive hook: archive an incoming message for the recipient."""
        self._submit(MessageEvent(Direction.INCOMING, to_jid, from_jid, packet))

    def _submit(self, event: MessageEvent) -> None:
        actor = self.actor_for(event.owner.server)
        if actor is None:
            logger.debug(
                "Ignoring event for unserved domain",
                extra={"owner_domain": event.owner.server},
            )
            return
        actor.submit_incoming(event)

    async def process_iq(
        self,
        from_jid: JID,
        to_jid: JID,
        query: ET.Element,
        emitter: Emitter | None = None,
    ) -> QueryOutcome:
        """IQ handler for the archive namespace.

        The requester queries their own archive. The final IQ result is
        left to the caller, after QueryOutcome.wait().

        Args:
            from_jid: Requester
            to_jid: Address the IQ was sent to
            query: The IQ child element
            emitter: Per-request emitter (default: the service emitter)

        Returns:
            QueryOutcome; refused requests carry a fault and no emission.
        """
        emitter = emitter or self.emitter
        actor = self.actor_for(from_jid.server)

        if actor is None:
            return await self._refuse(
                emitter, from_jid, to_jid, FaultKind.NOT_ALLOWED, "Archive not served for domain"
            )

        if local_name(query) != "query":
            return await self._refuse(
                emitter,
                from_jid,
                to_jid,
                FaultKind.FEATURE_NOT_IMPLEMENTED,
                f"Unsupported archive request: {local_name(query)}",
            )

        request = QueryRequest(
            requester=from_jid,
            service=to_jid,
            owner=from_jid.bare,
            constraints=list(query),
            request_tag=query.get("queryid", ""),
            emitter=emitter,
        )
        return await actor.submit_query(request)

    async def _refuse(
        self,
        emitter: Emitter,
        from_jid: JID,
        to_jid: JID,
        kind: FaultKind,
        detail: str,
    ) -> QueryOutcome:
        logger.info(
            "Refused archive request",
            extra={"requester": str(from_jid), "fault": kind.value},
        )
        await emitter.emit_fault(from_jid, to_jid, kind, detail)
        return QueryOutcome(fault=kind, detail=detail)

    def disco_features(self, acc: list[str] | None, node: str = "") -> list[str] | None:
        """Service discovery hook: add the archive feature on the root node."""
        if node:
            return acc
        return list(acc or []) + [CAPABILITY]

    @property
    def info(self) -> dict[str, Any]:
        return {"hosts": list(self.actors), "actors": [a.info for a in self.actors.values()]}
