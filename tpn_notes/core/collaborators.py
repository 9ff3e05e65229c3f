"""
Boundaries to the surrounding application: document persistence, identity
and the presentation layer's blocking decisions. The engine only consumes
these; the in-memory versions back the HTTP service and the tests.
"""
from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from tpn_notes.core.notes.models import Segment

_log = logging.getLogger("tpn.collaborators")

ANONYMOUS = "anonymous"


class DocumentStore(Protocol):
    def load(self, doc_id: str) -> Tuple[List[Segment], Dict[str, Any]]: ...

    def save(self, doc_id: Optional[str], segments: List[Segment]) -> str: ...


class IdentityProvider(Protocol):
    def current_user(self) -> Dict[str, Any]: ...


class DecisionPrompt(Protocol):
    def alert(self, message: str) -> None: ...

    def confirm(self, message: str) -> bool: ...


class DocumentNotFound(KeyError):
    pass


class InMemoryDocumentStore:
    """Thread-safe dict-backed store; segments are deep-copied in and out."""

    def __init__(self):
        self._docs: Dict[str, Tuple[List[Segment], Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def load(self, doc_id: str) -> Tuple[List[Segment], Dict[str, Any]]:
        with self._lock:
            if doc_id not in self._docs:
                raise DocumentNotFound(doc_id)
            segments, metadata = self._docs[doc_id]
            return [s.model_copy(deep=True) for s in segments], dict(metadata)

    def save(self, doc_id: Optional[str], segments: List[Segment]) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        with self._lock:
            previous = self._docs.get(doc_id)
            revision = previous[1]["revision"] + 1 if previous else 1
            self._docs[doc_id] = (
                [s.model_copy(deep=True) for s in segments],
                {"id": doc_id, "revision": revision, "segment_count": len(segments)},
            )
        _log.debug("Saved document %s revision %d", doc_id, revision)
        return doc_id

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._docs


class HeaderIdentity:
    """Identity taken from a request header value (X-User-Id)."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = (user_id or "").strip() or ANONYMOUS

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "HeaderIdentity":
        return cls(headers.get("x-user-id") or headers.get("X-User-Id"))

    def current_user(self) -> Dict[str, Any]:
        return {"id": self.user_id}


class StaticDecision:
    """
    Non-interactive presentation layer: every confirm returns ``confirm``.
    Prompts are recorded for callers that want to surface them.
    """

    def __init__(self, confirm: bool = False):
        self._confirm = confirm
        self.alerts: List[str] = []
        self.confirmations: List[str] = []

    def alert(self, message: str) -> None:
        self.alerts.append(message)

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        return self._confirm

    def prompts(self) -> Dict[str, List[str]]:
        return {"alerts": copy.copy(self.alerts), "confirmations": copy.copy(self.confirmations)}
