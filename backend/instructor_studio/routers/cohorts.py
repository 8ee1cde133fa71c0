from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..backend_api import CohortsApi, ExerciseInstancesApi, FasesApi, ProgramsApi, ProofPointsApi
from ..backend_client import ApiClientError, BackendClient, get_backend_client
from ..dashboard import (
    analytics_outline,
    cohort_analytics,
    cohort_status_counts,
    communication_history,
    filter_cohorts,
    filter_students,
    set_proof_point_exercises,
    student_rows,
    toggle_all,
    toggle_student,
)
from ..db import get_db
from ..notifications import show_toast
from ..schemas import Cohort, Communication, ProgressRecord, Student
from ..wizards import CohortForm, build_cohort_payload, estimated_end_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cohorts", tags=["cohorts"])


class SelectionRequest(BaseModel):
    selected: List[str] = Field(default_factory=list)
    # One student to toggle; omit to toggle everything visible
    student_id: Optional[str] = None
    search: str = ""
    status: str = "todos"


async def _students(client: BackendClient, cohort_id: str) -> List[Student]:
    return [Student.model_validate(s) for s in await CohortsApi(client).students(cohort_id) or []]


@router.get("")
async def list_cohorts(search: str = "", status: str = "todas", client: BackendClient = Depends(get_backend_client)):
    cohorts = [Cohort.model_validate(c) for c in await CohortsApi(client).list() or []]
    return {
        "cohorts": [c.model_dump() for c in filter_cohorts(cohorts, search=search, status=status)],
        "counts": cohort_status_counts(cohorts),
    }


@router.get("/estimate-end-date")
async def estimate_end_date(programa_id: str, fecha_inicio: date, client: BackendClient = Depends(get_backend_client)):
    program = await ProgramsApi(client).get(programa_id) or {}
    return {"fecha_fin_estimada": estimated_end_date(fecha_inicio, program.get("duracion_semanas")).isoformat()}


@router.post("", status_code=201)
async def create_cohort(
    form: CohortForm,
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    program = await ProgramsApi(client).get(form.programa_id) or {}
    payload = build_cohort_payload(
        form,
        programa_nombre=program.get("nombre", ""),
        duracion_semanas=program.get("duracion_semanas"),
    )
    created = await CohortsApi(client).create(payload)
    show_toast(db, "success", f"Cohorte \"{form.nombre}\" creada")
    return created


@router.get("/{cohort_id}")
async def get_cohort(cohort_id: str, client: BackendClient = Depends(get_backend_client)):
    return await CohortsApi(client).get(cohort_id)


@router.get("/{cohort_id}/students")
async def list_students(
    cohort_id: str,
    search: str = "",
    status: str = "todos",
    client: BackendClient = Depends(get_backend_client),
):
    students = await _students(client, cohort_id)
    visible = filter_students(students, search=search, status=status)
    return {"students": student_rows(visible), "total": len(students), "visible": len(visible)}


@router.post("/{cohort_id}/students/selection")
async def update_selection(cohort_id: str, req: SelectionRequest, client: BackendClient = Depends(get_backend_client)):
    visible = filter_students(await _students(client, cohort_id), search=req.search, status=req.status)
    if req.student_id is not None:
        selected = toggle_student(req.selected, req.student_id)
    else:
        selected = toggle_all(req.selected, visible)
    return {"selected": selected}


@router.post("/{cohort_id}/students", status_code=201)
async def enroll_student(
    cohort_id: str,
    data: Dict[str, Any],
    client: BackendClient = Depends(get_backend_client),
    db: Session = Depends(get_db),
):
    result = await CohortsApi(client).enroll_student(cohort_id, data)
    show_toast(db, "success", "Estudiante inscrito")
    return result


@router.get("/{cohort_id}/communications")
async def list_communications(cohort_id: str, client: BackendClient = Depends(get_backend_client)):
    communications = [Communication.model_validate(c) for c in await CohortsApi(client).communications(cohort_id) or []]
    return communication_history(communications)


async def _or_default(call, default):
    try:
        return await call
    except ApiClientError as err:
        logger.warning("Analytics source unavailable (%s): %s", err.status_code, err.message)
        return default


def _program_id(cohort: Dict[str, Any]) -> Optional[str]:
    programa = cohort.get("programa")
    if isinstance(programa, str):
        return programa
    return (programa or {}).get("id")


async def _program_phases(client: BackendClient, program_id: str) -> List[Dict[str, Any]]:
    fases = await _or_default(FasesApi(client).by_program(program_id), None) or []
    api = ProofPointsApi(client)
    for fase in fases:
        if fase.get("id"):
            fase["proof_points"] = await _or_default(api.by_fase(fase["id"]), None) or []
    return fases


@router.get("/{cohort_id}/analytics")
async def get_cohort_analytics(cohort_id: str, client: BackendClient = Depends(get_backend_client)):
    cohorts = CohortsApi(client)
    cohort = await cohorts.get(cohort_id) or {}
    structure = cohort.get("structure") or {}
    outline = analytics_outline(structure.get("phases") or [])
    program_id = _program_id(cohort)
    if not outline and program_id:
        outline = analytics_outline(await _program_phases(client, program_id))

    # Snapshots may omit exercises; ask the backend per proof point
    missing = [pp["id"] for phase in outline for pp in phase["proof_points"] if not pp["ejercicios"]]
    exercises_api = ExerciseInstancesApi(client)
    fetched = await asyncio.gather(*(_or_default(exercises_api.by_proof_point(pp_id), None) for pp_id in missing))
    for pp_id, exercises in zip(missing, fetched):
        set_proof_point_exercises(outline, pp_id, exercises or [])

    submissions = await _or_default(cohorts.submissions(cohort_id), None) or []
    overview = await _or_default(cohorts.progress_overview(cohort_id), None) or {}
    records = [ProgressRecord.model_validate(r) for r in overview.get("submissions") or []]

    analytics = cohort_analytics(outline, records, submissions, total_students=cohort.get("totalEstudiantes") or 0)
    analytics.update({"cohorte_id": cohort_id, "programa_id": program_id})
    return analytics
