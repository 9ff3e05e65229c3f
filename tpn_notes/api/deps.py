"""Process-wide collaborators for the HTTP service."""
from __future__ import annotations

from fastapi import Request

from tpn_notes.core.collaborators import DocumentStore, HeaderIdentity, InMemoryDocumentStore
from tpn_notes.core.session import SessionRegistry

documents: DocumentStore = InMemoryDocumentStore()
sessions = SessionRegistry()


def identity_of(request: Request) -> HeaderIdentity:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        identity = HeaderIdentity.from_headers(request.headers)
    return identity
