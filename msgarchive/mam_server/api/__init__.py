"""
API module for the archive server.

This module provides the optional HTTP intake (FastAPI) over
ArchiveService. In-process hosts call the service directly instead.

How to change safely:
    - HTTP endpoints should match the in-process hook semantics
    - Add endpoints, don't change existing response shapes
"""

from .http_server import FAULT_STATUS, create_app

__all__ = [
    "FAULT_STATUS",
    "create_app",
]
