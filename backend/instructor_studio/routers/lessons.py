from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..backend_api import ComponentContentApi
from ..backend_client import BackendClient, get_backend_client
from ..db import get_db
from ..gemini_client import GeminiClient
from ..lessons import LessonSection, LessonSession, ShortAnswerEvaluator, render_lesson
from ..models import LessonProgress
from ..schemas import LessonContent, VerificationQuestion


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lessons", tags=["lessons"])


class RenderRequest(BaseModel):
    content: LessonContent


class SelectRequest(BaseModel):
    option_id: str
    multi: Optional[bool] = None


class AnswerRequest(BaseModel):
    text: str


class SectionRequest(BaseModel):
    section_id: Optional[str] = None


def get_viewer_id(x_viewer_id: Optional[str] = Header(default=None)) -> str:
    return x_viewer_id or "preview"


def _short_answer_prompt(question: VerificationQuestion, answer: str, section: Optional[LessonSection]) -> str:
    parts = [
        "Eres un evaluador de respuestas cortas en una lección en línea.",
        f"Pregunta:\n---\n{question.enunciado}\n---",
        f"Respuesta del estudiante:\n---\n{answer}\n---",
    ]
    if section is not None:
        parts.append(f"Contenido de la sección \"{section.title}\":\n---\n{section.content[:4000]}\n---")
    if question.criteriosEvaluacion:
        parts.append(f"Criterios de evaluación:\n{json.dumps(question.criteriosEvaluacion, ensure_ascii=False)}")
    parts.append(
        "Devuelve SOLO un objeto JSON compacto con las claves: "
        "score (uno de: correcto, parcialmente_correcto, incorrecto), "
        "feedback (string breve en español), sugerencias (lista de strings)."
    )
    return "\n\n".join(parts)


async def gemini_short_answer_evaluator(
    question: VerificationQuestion,
    answer: str,
    section: Optional[LessonSection],
) -> Optional[Dict[str, Any]]:
    client = GeminiClient()
    try:
        data = await client.generate_json(_short_answer_prompt(question, answer, section))
    finally:
        await client.aclose()
    sugerencias = data.get("sugerencias")
    return {
        "score": str(data.get("score") or "").strip().lower(),
        "feedback": str(data.get("feedback") or ""),
        "sugerencias": [str(s) for s in sugerencias] if isinstance(sugerencias, list) else [],
    }


def get_short_answer_evaluator() -> ShortAnswerEvaluator:
    return gemini_short_answer_evaluator


async def _lesson_content(client: BackendClient, component_id: str) -> LessonContent:
    data = await ComponentContentApi(client).get(component_id)
    if not data:
        raise HTTPException(status_code=404, detail="Contenido no encontrado")
    contenido = data.get("contenido", data) if isinstance(data, dict) else data
    return LessonContent.model_validate(contenido)


def _load_session(db: Session, viewer_id: str, component_id: str, content: LessonContent) -> LessonSession:
    row = db.get(LessonProgress, (viewer_id, component_id))
    if row is None:
        return LessonSession(content)
    return LessonSession(
        content,
        question_state=json.loads(row.question_state_json or "{}"),
        attempts=json.loads(row.attempts_json or "{}"),
        current_section_id=row.current_section_id,
    )


def _save_session(db: Session, viewer_id: str, component_id: str, session: LessonSession) -> Dict[str, Any]:
    state = session.to_state()
    row = db.get(LessonProgress, (viewer_id, component_id))
    if row is None:
        row = LessonProgress(viewer_id=viewer_id, component_id=component_id)
        db.add(row)
    row.question_state_json = json.dumps(state["questionState"], ensure_ascii=False)
    row.attempts_json = json.dumps(state["attempts"])
    row.current_section_id = state["currentSectionId"]
    db.commit()
    return state


def _unknown_question(e: KeyError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Pregunta no encontrada")


@router.post("/render")
async def render(req: RenderRequest):
    return render_lesson(req.content)


@router.get("/{component_id}")
async def get_lesson(
    component_id: str,
    viewer_id: str = Depends(get_viewer_id),
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    content = await _lesson_content(client, component_id)
    session = _load_session(db, viewer_id, component_id, content)
    return {**render_lesson(content), "progress": session.to_state()}


@router.post("/{component_id}/questions/{question_id}/select")
async def select_option(
    component_id: str,
    question_id: str,
    req: SelectRequest,
    viewer_id: str = Depends(get_viewer_id),
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    session = _load_session(db, viewer_id, component_id, await _lesson_content(client, component_id))
    try:
        state = session.select_option(question_id, req.option_id, req.multi)
    except KeyError as e:
        raise _unknown_question(e)
    _save_session(db, viewer_id, component_id, session)
    return asdict(state)


@router.put("/{component_id}/questions/{question_id}/answer")
async def set_answer(
    component_id: str,
    question_id: str,
    req: AnswerRequest,
    viewer_id: str = Depends(get_viewer_id),
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    session = _load_session(db, viewer_id, component_id, await _lesson_content(client, component_id))
    try:
        state = session.set_answer_text(question_id, req.text)
    except KeyError as e:
        raise _unknown_question(e)
    _save_session(db, viewer_id, component_id, session)
    return asdict(state)


@router.post("/{component_id}/questions/{question_id}/check")
async def check_answer(
    component_id: str,
    question_id: str,
    viewer_id: str = Depends(get_viewer_id),
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    session = _load_session(db, viewer_id, component_id, await _lesson_content(client, component_id))
    try:
        result = session.check_answer(question_id)
    except KeyError as e:
        raise _unknown_question(e)
    if result is None:
        raise HTTPException(status_code=400, detail="Selecciona al menos una opción")
    _save_session(db, viewer_id, component_id, session)
    return {"result": asdict(result), "state": asdict(session.state_for(question_id))}


@router.post("/{component_id}/questions/{question_id}/evaluate")
async def evaluate_short_answer(
    component_id: str,
    question_id: str,
    viewer_id: str = Depends(get_viewer_id),
    client: BackendClient = Depends(get_backend_client),
    evaluator: ShortAnswerEvaluator = Depends(get_short_answer_evaluator),
    db: Session = Depends(get_db),
):
    session = _load_session(db, viewer_id, component_id, await _lesson_content(client, component_id))
    try:
        session.question(question_id)
    except KeyError as e:
        raise _unknown_question(e)
    state = session.state_for(question_id)
    if not (state.answerText or "").strip():
        raise HTTPException(status_code=400, detail="Escribe una respuesta antes de enviarla")
    result = await session.submit_short_answer(question_id, evaluator)
    logger.info("Short answer %s/%s evaluated: %s", component_id, question_id, state.status)
    _save_session(db, viewer_id, component_id, session)
    return {"result": asdict(result) if result else None, "state": asdict(state)}


@router.put("/{component_id}/section")
async def set_section(
    component_id: str,
    req: SectionRequest,
    viewer_id: str = Depends(get_viewer_id),
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    session = _load_session(db, viewer_id, component_id, await _lesson_content(client, component_id))
    try:
        session.set_current_section(req.section_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    return _save_session(db, viewer_id, component_id, session)


@router.delete("/{component_id}/progress", status_code=204)
async def reset_progress(
    component_id: str,
    viewer_id: str = Depends(get_viewer_id),
    db: Session = Depends(get_db),
):
    row = db.get(LessonProgress, (viewer_id, component_id))
    if row is not None:
        db.delete(row)
        db.commit()
    return Response(status_code=204)
