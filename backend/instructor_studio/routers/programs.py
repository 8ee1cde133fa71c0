from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from ..backend_api import FasesApi, ProgramsApi, ProofPointsApi
from ..backend_client import BackendClient, get_backend_client
from ..db import get_db
from ..notifications import show_toast
from ..wizards import LevelForm, ProgramForm, apply_step, levels_summary, number_levels, review_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/programs", tags=["programs"])


class WizardStepRequest(BaseModel):
	form: ProgramForm
	step: int = Field(ge=1, le=4)


class PrerequisitesRequest(BaseModel):
	prerequisitos: List[str]


class LevelsRequest(BaseModel):
	niveles: List[LevelForm]


class ReorderRequest(BaseModel):
	ids: List[str]


@router.get("")
async def list_programs(
	estado: Optional[str] = None,
	creador: Optional[str] = None,
	client: BackendClient = Depends(get_backend_client),
):
	return await ProgramsApi(client).list(estado=estado, creador=creador)


# Wizard routes come before /{program_id} so "wizard" is never taken as an id

@router.post("/wizard/step")
async def wizard_step(req: WizardStepRequest):
	try:
		form = apply_step(req.form, req.step)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	out: Dict[str, Any] = {"step": req.step, "form": form.model_dump()}
	if req.step == 4:
		out["review"] = review_summary(form)
	return out


@router.post("/wizard/review")
async def wizard_review(form: ProgramForm):
	return review_summary(apply_step(form, 4))


@router.post("/wizard", status_code=201)
async def wizard_submit(
	form: ProgramForm,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	form = apply_step(form, 4)
	summary = review_summary(form)
	if not summary["valid"]:
		raise HTTPException(status_code=400, detail={"message": "El programa tiene errores", "issues": summary["issues"]})
	created = await ProgramsApi(client).create_from_wizard(form.model_dump())
	logger.info("Program created from wizard: %s", form.nombre_programa)
	show_toast(db, "success", f"Programa \"{form.nombre_programa}\" creado")
	return created


@router.post("", status_code=201)
async def create_program(data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	return await ProgramsApi(client).create(data)


@router.get("/{program_id}")
async def get_program(program_id: str, client: BackendClient = Depends(get_backend_client)):
	return await ProgramsApi(client).get(program_id)


@router.put("/{program_id}")
async def update_program(program_id: str, data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	return await ProgramsApi(client).update(program_id, data)


@router.delete("/{program_id}", status_code=204)
async def delete_program(program_id: str, client: BackendClient = Depends(get_backend_client)):
	await ProgramsApi(client).delete(program_id)
	return Response(status_code=204)


@router.post("/{program_id}/publish")
async def publish_program(
	program_id: str,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	result = await ProgramsApi(client).publish(program_id)
	show_toast(db, "success", "Programa publicado")
	return result


@router.post("/{program_id}/archive")
async def archive_program(program_id: str, client: BackendClient = Depends(get_backend_client)):
	return await ProgramsApi(client).archive(program_id)


@router.get("/{program_id}/versions")
async def program_versions(program_id: str, client: BackendClient = Depends(get_backend_client)):
	return await ProgramsApi(client).versions(program_id)


@router.get("/{program_id}/fases")
async def list_fases(program_id: str, client: BackendClient = Depends(get_backend_client)):
	return await FasesApi(client).by_program(program_id)


@router.post("/{program_id}/fases", status_code=201)
async def create_fase(program_id: str, data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	return await FasesApi(client).create(program_id, data)


@router.put("/{program_id}/fases/reorder")
async def reorder_fases(program_id: str, req: ReorderRequest, client: BackendClient = Depends(get_backend_client)):
	return await FasesApi(client).reorder(program_id, req.ids)


@router.put("/fases/{fase_id}")
async def update_fase(fase_id: str, data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	return await FasesApi(client).update(fase_id, data)


@router.delete("/fases/{fase_id}", status_code=204)
async def delete_fase(fase_id: str, client: BackendClient = Depends(get_backend_client)):
	await FasesApi(client).delete(fase_id)
	return Response(status_code=204)


@router.get("/fases/{fase_id}/proof-points")
async def list_proof_points(fase_id: str, client: BackendClient = Depends(get_backend_client)):
	return await ProofPointsApi(client).by_fase(fase_id)


@router.post("/fases/{fase_id}/proof-points", status_code=201)
async def create_proof_point(fase_id: str, data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	return await ProofPointsApi(client).create(fase_id, data)


@router.put("/fases/{fase_id}/proof-points/reorder")
async def reorder_proof_points(fase_id: str, req: ReorderRequest, client: BackendClient = Depends(get_backend_client)):
	return await ProofPointsApi(client).reorder(fase_id, req.ids)


@router.put("/proof-points/{proof_point_id}")
async def update_proof_point(proof_point_id: str, data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	return await ProofPointsApi(client).update(proof_point_id, data)


@router.delete("/proof-points/{proof_point_id}", status_code=204)
async def delete_proof_point(proof_point_id: str, client: BackendClient = Depends(get_backend_client)):
	await ProofPointsApi(client).delete(proof_point_id)
	return Response(status_code=204)


@router.put("/proof-points/{proof_point_id}/prerequisites")
async def update_prerequisites(
	proof_point_id: str,
	req: PrerequisitesRequest,
	client: BackendClient = Depends(get_backend_client),
):
	if proof_point_id in req.prerequisitos:
		raise HTTPException(status_code=400, detail="Un proof point no puede ser prerequisito de sí mismo")
	return await ProofPointsApi(client).update_prerequisites(proof_point_id, req.prerequisitos)


@router.put("/proof-points/{proof_point_id}/levels")
async def save_levels(
	proof_point_id: str,
	req: LevelsRequest,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	niveles = number_levels(req.niveles)
	result = await ProofPointsApi(client).update_levels(proof_point_id, niveles)
	show_toast(db, "success", "Niveles guardados")
	return {"proof_point": result, "summary": levels_summary(req.niveles)}
