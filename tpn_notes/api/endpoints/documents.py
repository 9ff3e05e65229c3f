from __future__ import annotations

from fastapi import APIRouter, HTTPException

from tpn_notes.api import deps
from tpn_notes.api.schemas.notes import DocumentPutRequest, DocumentResponse
from tpn_notes.core.collaborators import DocumentNotFound
from tpn_notes.core.notes.codec import parse_notes

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


@router.get("/{doc_id}", response_model=DocumentResponse)
def get_document(doc_id: str):
    try:
        segments, metadata = deps.documents.load(doc_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"id": doc_id, "segments": segments, "metadata": metadata}


@router.put("/{doc_id}", response_model=DocumentResponse)
def put_document(doc_id: str, req: DocumentPutRequest):
    if req.segments is None and req.lines is None:
        raise HTTPException(status_code=400, detail="Provide segments or lines")
    segments = list(req.segments) if req.segments is not None else parse_notes(req.lines)
    saved_id = deps.documents.save(doc_id, segments)
    segments, metadata = deps.documents.load(saved_id)
    return {"id": saved_id, "segments": segments, "metadata": metadata}
