"""
Per-domain archive actor.

Each served domain gets one ArchiveActor: a single worker task draining a
mailbox of message events and history queries. The worker owns the
domain's ArchiveStore (and through it the connection pool), so writes and
queries for that domain never run concurrently.

Query flow:
    constraints ──parse──▶ filter+cursor ──find──▶ records ──window──▶ page
        │                                    │                       │
     bad-request                     service-unavailable      policy-violation
                                                                     │
                                            emission task ◀──────────┘
                                      (decode + emit each item, in order)

Invariants:
    - Mailbox order is processing order
    - A query produces exactly one fault or a page, never both
    - Result emission runs in a tracked task so the mailbox is not blocked
      on outbound I/O; its failures are logged and observable
    - Archiving failures never propagate to the event submitter

How to change safely:
    - Anything touching the store must run inside the worker
    - Emission tasks must not touch actor state
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from typing import Any

from ..emitter import Emitter, LoggingEmitter
from ..errors import ArchiveError, FaultKind, fault_for
from ..protocol.jid import JID
from . import codec
from .codec import ArchivedMessage, Direction, StoredRecord
from .policy import ArchivePolicy
from .query import parse_query
from .store import ArchiveStore
from .window import ResultPage, ResultWindow

logger = logging.getLogger(__name__)


@dataclass
class MessageEvent:
    """A message seen by the server on behalf of a local user.

    Attributes:
        direction: Outgoing (owner sent it) or incoming (owner received it)
        owner: Local user whose archive records the message
        counterpart: Remote party
        packet: The stanza as routed
    """

    direction: Direction
    owner: JID
    counterpart: JID
    packet: ET.Element


@dataclass
class QueryRequest:
    """A history query addressed to the archive.

    Attributes:
        requester: Full JID results are sent to
        service: Address results are sent from
        owner: Archive being queried
        constraints: Children of the query element, in document order
        request_tag: Query id echoed in every result item
        emitter: Per-request emitter overriding the actor's default
    """

    requester: JID
    service: JID
    owner: JID
    constraints: list[ET.Element]
    request_tag: str = ""
    emitter: Emitter | None = None


@dataclass
class QueryOutcome:
    """Result of processing a query in the actor.

    Attributes:
        fault: Fault reported instead of a page, if any
        detail: Human-readable fault text
        page_size: Records in the page (before decode skips)
        emission: Task emitting the page, None when faulted
    """

    fault: FaultKind | None = None
    detail: str | None = None
    page_size: int = 0
    emission: asyncio.Task | None = None

    @property
    def ok(self) -> bool:
        return self.fault is None

    async def wait(self) -> int:
        """Wait for emission to finish.

        Returns:
            Number of items emitted
        """
        if self.emission is None:
            return 0
        return await self.emission


_STOP = object()


@dataclass
class _Envelope:
    kind: str
    payload: Any
    future: asyncio.Future | None = None


@dataclass
class ActorStats:
    events_received: int = 0
    messages_archived: int = 0
    messages_dropped: int = 0
    queries_processed: int = 0
    queries_faulted: int = 0
    emission_failures: int = 0


class ArchiveActor:
    """Serialized archive worker for one served domain.

    Example:
        >>> actor = ArchiveActor("example.org", store, emitter=router)
        >>> await actor.start()
        >>> actor.submit_incoming(event)
        >>> outcome = await actor.submit_query(request)
        >>> await outcome.wait()
        >>> await actor.stop()
    """

    def __init__(
        self,
        host: str,
        store: ArchiveStore,
        policy: ArchivePolicy | None = None,
        emitter: Emitter | None = None,
        window: ResultWindow | None = None,
    ) -> None:
        """Initialize the actor.

        Args:
            host: Served domain
            store: The domain's archive store (owned by this actor)
            policy: Archiving policy (default: archive all body messages)
            emitter: Default emitter for results and faults
            window: Result windowing policy (default cap 50)
        """
        self.host = host
        self.store = store
        self.policy = policy or ArchivePolicy()
        self.emitter = emitter or LoggingEmitter()
        self.window = window or ResultWindow()
        self.stats = ActorStats()

        self._inbox: asyncio.Queue[_Envelope | object] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._emissions: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending_emissions(self) -> int:
        return len(self._emissions)

    async def start(self) -> None:
        """Start the worker task."""
        if self._running:
            logger.warning("Archive actor already running", extra={"host": self.host})
            return

        self._running = True
        self._worker = asyncio.create_task(self._run(), name=f"mam-actor-{self.host}")
        logger.info("Started archive actor", extra={"host": self.host})

    async def stop(self) -> None:
        """Process what is already queued, finish emissions, close the store."""
        if not self._running:
            return

        self._running = False
        self._inbox.put_nowait(_STOP)
        if self._worker is not None:
            await self._worker
            self._worker = None

        await self.drain()
        await self.store.close()
        logger.info("Stopped archive actor", extra={"host": self.host})

    async def drain(self) -> None:
        """Wait for all in-flight emission tasks."""
        if self._emissions:
            await asyncio.gather(*list(self._emissions), return_exceptions=True)

    def submit_incoming(self, event: MessageEvent) -> None:
        """Queue a message event for archiving (fire and forget)."""
        if not self._running:
            logger.debug("Dropping event for stopped actor", extra={"host": self.host})
            return
        self._inbox.put_nowait(_Envelope("incoming", event))

    def submit_query(self, request: QueryRequest) -> asyncio.Future:
        """Queue a query.

        Returns:
            Future resolving to the QueryOutcome once the query has been
            processed (emission may still be in flight).

        Raises:
            RuntimeError: If the actor is not running.
        """
        if not self._running:
            raise RuntimeError(f"Archive actor for {self.host} is not running")

        future = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Envelope("query", request, future))
        return future

    async def _run(self) -> None:
        """Worker loop: one mailbox entry at a time."""
        while True:
            envelope = await self._inbox.get()
            if envelope is _STOP:
                break

            try:
                if envelope.kind == "incoming":
                    await self.handle_incoming(envelope.payload)
                else:
                    outcome = await self.handle_query(envelope.payload)
                    if not envelope.future.done():
                        envelope.future.set_result(outcome)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Archive actor error: {e}",
                    exc_info=True,
                    extra={"host": self.host, "kind": envelope.kind},
                )
                if envelope.future is not None and not envelope.future.done():
                    envelope.future.set_exception(e)

    async def handle_incoming(self, event: MessageEvent) -> ArchivedMessage | None:
        """Archive a message event if policy keeps it.

        Returns:
            The stored record, or None if dropped or the write failed.
        """
        self.stats.events_received += 1

        if not self.policy.should_archive(event.owner):
            self.stats.messages_dropped += 1
            return None

        body = self.policy.extract_body(event.packet)
        if body is None:
            self.stats.messages_dropped += 1
            return None

        record = codec.encode(
            event.direction,
            event.owner,
            event.counterpart,
            body,
            event.packet,
        )
        stored = await self.store.insert(record)
        if stored is not None:
            self.stats.messages_archived += 1
        return stored

    async def handle_query(self, request: QueryRequest) -> QueryOutcome:
        """Run a query and start emitting its page.

        Faults are emitted here, inside the worker; result items are
        emitted by a separate task.
        """
        self.stats.queries_processed += 1
        emitter = request.emitter or self.emitter

        try:
            parsed = parse_query(request.constraints)
            records = await self.store.find(
                request.owner,
                parsed.filter,
                self.window.fetch_count(parsed.cursor),
            )
            page = self.window.apply(records, parsed.cursor)

        except ArchiveError as e:
            return await self._fault(request, emitter, e.fault, e.message)
        except Exception as e:
            logger.error(
                f"Unexpected query failure: {e}",
                exc_info=True,
                extra={"host": self.host, "requester": str(request.requester)},
            )
            return await self._fault(request, emitter, fault_for(e), "Archive unavailable")

        logger.debug(
            "Query page ready",
            extra={
                "host": self.host,
                "requester": str(request.requester),
                "records": len(page),
                "explicit_limit": page.limit.explicit,
            },
        )

        task = asyncio.create_task(self._emit_page(page, request, emitter))
        self._emissions.add(task)
        task.add_done_callback(self._emission_done)
        return QueryOutcome(page_size=len(page), emission=task)

    async def _fault(
        self,
        request: QueryRequest,
        emitter: Emitter,
        kind: FaultKind,
        detail: str,
    ) -> QueryOutcome:
        """Report the single terminal fault of a query."""
        self.stats.queries_faulted += 1
        logger.info(
            "Query fault",
            extra={
                "host": self.host,
                "requester": str(request.requester),
                "fault": kind.value,
                "error": detail,
            },
        )
        await emitter.emit_fault(request.requester, request.service, kind, detail)
        return QueryOutcome(fault=kind, detail=detail)

    async def _emit_page(
        self,
        page: ResultPage[StoredRecord],
        request: QueryRequest,
        emitter: Emitter,
    ) -> int:
        """Decode and emit each record in page order."""
        sent = 0
        for record in page.records:
            item = codec.decode(record, request.request_tag)
            if item is None:
                continue

            message = ET.Element("message", {"to": str(request.requester)})
            message.append(item)
            await emitter.emit(request.requester, request.service, message)
            sent += 1
        return sent

    def _emission_done(self, task: asyncio.Task) -> None:
        self._emissions.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.stats.emission_failures += 1
            logger.error(
                f"Result emission failed: {exc}",
                exc_info=exc,
                extra={"host": self.host},
            )

    @property
    def info(self) -> dict[str, Any]:
        """Actor statistics."""
        return {
            "host": self.host,
            "running": self._running,
            "queued": self._inbox.qsize(),
            "pending_emissions": self.pending_emissions,
            **asdict(self.stats),
        }
