"""
HTTP intake for the archive service.

This module provides an optional REST API over ArchiveService. It's useful
for:
- Servers that run the archive out of process
- Manual testing and debugging
- Replaying traffic into an archive

Invariants:
    - HTTP endpoints have the same semantics as the in-process hooks
    - Stanzas travel as serialized XML strings inside JSON bodies
    - A query response holds either all result items or one fault

How to change safely:
    - Keep fault-to-status mapping stable; clients branch on it
    - Version the API if breaking changes are needed
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .._version import __version__
from ..emitter import CollectingEmitter
from ..errors import FaultKind
from ..protocol.jid import JID, InvalidJID
from ..protocol.stanza import from_bytes, to_text
from ..service import ArchiveService

logger = logging.getLogger(__name__)

FAULT_STATUS = {
    FaultKind.BAD_REQUEST: 400,
    FaultKind.NOT_ALLOWED: 403,
    FaultKind.POLICY_VIOLATION: 403,
    FaultKind.FEATURE_NOT_IMPLEMENTED: 501,
    FaultKind.SERVICE_UNAVAILABLE: 503,
}


# --- Request/Response Models ---


class EventRequest(BaseModel):
    """A message routed by the server."""

    direction: Literal["outgoing", "incoming"] = Field(
        ..., description="outgoing: sent by owner; incoming: received by owner"
    )
    owner: str = Field(..., description="Local user JID")
    counterpart: str = Field(..., description="Remote party JID")
    stanza: str = Field(..., description="Serialized stanza")


class EventResponse(BaseModel):
    accepted: bool


class QueryBody(BaseModel):
    """A history query on behalf of a requester."""

    requester: str = Field(..., description="Full JID of the requester")
    to: str | None = Field(None, description="Address the query was sent to")
    stanza: str = Field(..., description="Serialized <query/> element")


class QueryResponse(BaseModel):
    items: list[str]
    count: int


class FaultResponse(BaseModel):
    fault: str
    text: str | None = None


# --- Helpers ---


def _parse_jid(value: str, field_name: str) -> JID:
    try:
        return JID.parse(value)
    except InvalidJID as e:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}: {e}")


def _parse_stanza(value: str) -> ET.Element:
    try:
        return from_bytes(value.encode("utf-8"))
    except ET.ParseError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stanza: {e}")


def get_service(request: Request) -> ArchiveService:
    return request.app.state.service


# --- App ---


def create_app(service: ArchiveService) -> FastAPI:
    """Create the HTTP application for an archive service.

    The service is started and stopped with the application lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await service.start()
        app.state.service = service
        yield
        await service.stop()

    app = FastAPI(
        title="Message Archive",
        description="Message archive intake and history queries.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(service.config.http.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.post("/v1/events", status_code=202, response_model=EventResponse)
    async def post_event(body: EventRequest, request: Request) -> EventResponse:
        """Archive a routed message."""
        svc = get_service(request)
        owner = _parse_jid(body.owner, "owner")
        counterpart = _parse_jid(body.counterpart, "counterpart")
        packet = _parse_stanza(body.stanza)

        if body.direction == "outgoing":
            svc.user_send_packet(owner, counterpart, packet)
        else:
            svc.user_receive_packet(counterpart, owner, packet)

        return EventResponse(accepted=svc.serves(owner.server))

    @app.post(
        "/v1/query",
        response_model=QueryResponse,
        responses={status: {"model": FaultResponse} for status in set(FAULT_STATUS.values())},
    )
    async def post_query(body: QueryBody, request: Request) -> Any:
        """Run a history query and return the full page."""
        svc = get_service(request)
        requester = _parse_jid(body.requester, "requester")
        to = _parse_jid(body.to, "to") if body.to else JID("", requester.server)
        query = _parse_stanza(body.stanza)

        collector = CollectingEmitter()
        outcome = await svc.process_iq(requester, to, query, emitter=collector)
        await outcome.wait()

        if not outcome.ok:
            return JSONResponse(
                status_code=FAULT_STATUS[outcome.fault],
                content=FaultResponse(fault=outcome.fault.value, text=outcome.detail).model_dump(),
            )

        items = [to_text(stanza) for stanza in collector.stanzas]
        return QueryResponse(items=items, count=len(items))

    @app.get("/v1/features")
    async def get_features(request: Request) -> dict[str, list[str]]:
        return {"features": get_service(request).disco_features([])}

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        svc = get_service(request)
        return {"status": "healthy", "service": "msgarchive", **svc.info}

    return app
