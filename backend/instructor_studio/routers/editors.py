from __future__ import annotations

import json
import math
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..backend_api import ComponentContentApi, ProgramsApi
from ..backend_client import BackendClient, get_backend_client
from ..db import get_db
from ..lessons import extract_sections
from ..models import EditorDraft
from ..notifications import show_toast
from ..wizards import FaseDocumentation, FaseDocumentationDraft, documentation_completeness, section_status


router = APIRouter(prefix="/editors", tags=["editors"])

ContentKind = Literal["leccion", "cuaderno", "simulacion"]
DraftKind = Literal["leccion", "cuaderno", "simulacion", "fase_documentacion"]

WORDS_PER_MINUTE = 250


class DraftRequest(BaseModel):
    payload: Dict[str, Any]
    # Revision the client last saw; omitted on first save
    revision: Optional[int] = None


class SaveRequest(BaseModel):
    # Falls back to the stored draft when omitted
    contenido: Optional[Dict[str, Any]] = None


class PublishRequest(BaseModel):
    componente_contenido_id: str


class RestoreRequest(BaseModel):
    version_id: str
    razon: Optional[str] = None


class DocumentationRequest(BaseModel):
    documentacion: Dict[str, Any]
    # Marking complete enforces the minimums of every section
    completar: bool = False


def _get_draft(db: Session, kind: str, target_id: str) -> Optional[EditorDraft]:
    return db.scalars(select(EditorDraft).where(EditorDraft.kind == kind, EditorDraft.target_id == target_id)).first()


def _draft_out(row: EditorDraft) -> Dict[str, Any]:
    return {
        "kind": row.kind,
        "target_id": row.target_id,
        "payload": json.loads(row.payload_json),
        "revision": row.revision,
        "updated_at": row.updated_at.isoformat(),
    }


def _store_draft(db: Session, kind: str, target_id: str, payload: Dict[str, Any], revision: Optional[int]) -> EditorDraft:
    row = _get_draft(db, kind, target_id)
    if row is None:
        row = EditorDraft(kind=kind, target_id=target_id, payload_json=json.dumps(payload, ensure_ascii=False), revision=1)
        db.add(row)
    else:
        if revision is not None and revision != row.revision:
            raise HTTPException(status_code=409, detail=f"Draft changed since revision {revision} (now {row.revision})")
        row.payload_json = json.dumps(payload, ensure_ascii=False)
        row.revision += 1
    db.commit()
    db.refresh(row)
    return row


def _drop_draft(db: Session, kind: str, target_id: str) -> None:
    row = _get_draft(db, kind, target_id)
    if row is not None:
        db.delete(row)
        db.commit()


def lesson_metadata(text: str) -> Dict[str, int]:
    palabras = len(text.split())
    return {
        "palabras_estimadas": palabras,
        "tiempo_lectura_minutos": math.ceil(palabras / WORDS_PER_MINUTE),
        "secciones": len(extract_sections(text)),
    }


# Phase documentation; declared before the generic /{kind}/{target_id} routes

@router.get("/fases/{fase_id}/documentation")
async def get_documentation(
    fase_id: str,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    existing = await ProgramsApi(client).get_fase_documentation(fase_id)
    draft = _get_draft(db, "fase_documentacion", fase_id)
    source = json.loads(draft.payload_json) if draft else (existing or {})
    doc = FaseDocumentationDraft.model_validate({**source, "fase_id": source.get("fase_id") or fase_id})
    return {
        "documentacion": doc.model_dump(mode="json"),
        "from_draft": draft is not None,
        "completitud": documentation_completeness(doc),
        "secciones": section_status(doc),
    }


@router.put("/fases/{fase_id}/documentation/draft")
async def autosave_documentation(fase_id: str, req: DraftRequest, db: Session = Depends(get_db)):
    try:
        doc = FaseDocumentationDraft.model_validate({**req.payload, "fase_id": fase_id})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    doc.completitud = documentation_completeness(doc)
    row = _store_draft(db, "fase_documentacion", fase_id, doc.model_dump(mode="json"), req.revision)
    return {**_draft_out(row), "secciones": section_status(doc)}


@router.post("/fases/{fase_id}/documentation")
async def save_documentation(
    fase_id: str,
    req: DocumentationRequest,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    data = {**req.documentacion, "fase_id": fase_id}
    model = FaseDocumentation if req.completar else FaseDocumentationDraft
    try:
        doc = model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    doc.completitud = documentation_completeness(doc)
    saved = await ProgramsApi(client).save_fase_documentation(fase_id, doc.model_dump(mode="json"))
    _drop_draft(db, "fase_documentacion", fase_id)
    show_toast(db, "success", "Documentación completada" if req.completar else "Borrador de documentación guardado")
    return {"documentacion": saved, "completitud": doc.completitud, "secciones": section_status(doc)}


# Component content editors

@router.get("/{kind}/{target_id}/draft")
async def get_draft(kind: DraftKind, target_id: str, db: Session = Depends(get_db)):
    row = _get_draft(db, kind, target_id)
    if row is None:
        raise HTTPException(status_code=404, detail="No draft")
    return _draft_out(row)


@router.put("/{kind}/{target_id}/draft")
async def autosave_draft(kind: DraftKind, target_id: str, req: DraftRequest, db: Session = Depends(get_db)):
    return _draft_out(_store_draft(db, kind, target_id, req.payload, req.revision))


@router.delete("/{kind}/{target_id}/draft", status_code=204)
async def discard_draft(kind: DraftKind, target_id: str, db: Session = Depends(get_db)):
    _drop_draft(db, kind, target_id)
    return Response(status_code=204)


@router.get("/{kind}/{component_id}")
async def load_content(
    kind: ContentKind,
    component_id: str,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    content = await ComponentContentApi(client).get(component_id)
    draft = _get_draft(db, kind, component_id)
    return {"contenido": content, "draft": _draft_out(draft) if draft else None}


@router.post("/{kind}/{component_id}/save")
async def save_content(
    kind: ContentKind,
    component_id: str,
    req: SaveRequest,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    contenido = req.contenido
    if contenido is None:
        draft = _get_draft(db, kind, component_id)
        if draft is None:
            raise HTTPException(status_code=400, detail="Nothing to save")
        contenido = json.loads(draft.payload_json)
    if kind == "leccion":
        contenido = {**contenido, **lesson_metadata(str(contenido.get("markdown") or ""))}
    saved = await ComponentContentApi(client).save(component_id, contenido)
    _drop_draft(db, kind, component_id)
    show_toast(db, "success", "Contenido guardado")
    return saved


@router.post("/{kind}/{component_id}/publish")
async def publish_content(
    kind: ContentKind,
    component_id: str,
    req: PublishRequest,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    result = await ComponentContentApi(client).publish(req.componente_contenido_id)
    show_toast(db, "success", "Contenido publicado")
    return result


@router.get("/{kind}/{component_id}/history")
async def content_history(kind: ContentKind, component_id: str, client: BackendClient = Depends(get_backend_client)):
    return await ComponentContentApi(client).history(component_id)


@router.post("/{kind}/{component_id}/restore")
async def restore_content(
    kind: ContentKind,
    component_id: str,
    req: RestoreRequest,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    result = await ComponentContentApi(client).restore(component_id, req.version_id, req.razon)
    show_toast(db, "info", "Versión restaurada")
    return result
