from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from ..backend_api import ExerciseInstancesApi, ExerciseTemplatesApi
from ..backend_client import BackendClient, get_backend_client
from ..db import get_db
from ..exercises import (
	CATEGORY_METADATA,
	ConfigurationSchema,
	ContentStatus,
	build_exercise_payload,
	ensure_can_edit,
	ensure_can_generate,
	ensure_can_publish,
	ensure_can_reset,
	is_stuck,
	pending_generation,
	status_summary,
)
from ..notifications import show_toast
from ..schemas import ExerciseInstance, ExerciseTemplate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exercises", tags=["exercises"])


class AddExerciseRequest(BaseModel):
	template_id: str
	nombre: str = Field(min_length=1)
	configuracion: Dict[str, Any] = Field(default_factory=dict)
	descripcion_breve: Optional[str] = None
	consideraciones_contexto: str = ""
	duracion_estimada_minutos: Optional[int] = Field(default=None, ge=1)
	es_obligatorio: bool = False


class ReorderRequest(BaseModel):
	ids: List[str]


def _describe(exercise: ExerciseInstance) -> Dict[str, Any]:
	status = ContentStatus(exercise.estadoContenido)
	out = exercise.model_dump()
	out.update({
		"can_generate": status.can_generate,
		"can_edit": status.can_edit,
		"can_publish": status.can_publish,
		"stuck": is_stuck(exercise),
	})
	return out


async def _load(api: ExerciseInstancesApi, exercise_id: str) -> ExerciseInstance:
	data = await api.get(exercise_id)
	if not data:
		raise HTTPException(status_code=404, detail="Ejercicio no encontrado")
	return ExerciseInstance.model_validate(data)


@router.get("/categories")
async def categories():
	return CATEGORY_METADATA


@router.get("/templates")
async def list_templates(
	categoria: Optional[str] = None,
	official_only: bool = False,
	client: BackendClient = Depends(get_backend_client),
):
	if categoria and categoria not in CATEGORY_METADATA:
		raise HTTPException(status_code=400, detail=f"Unknown category: {categoria}")
	templates = await ExerciseTemplatesApi(client).list(categoria=categoria, official_only=official_only)
	return [
		{**t, "categoria_info": CATEGORY_METADATA.get(t.get("categoria"))}
		for t in templates or []
	]


@router.get("/templates/{template_id}/schema")
async def template_schema(template_id: str, client: BackendClient = Depends(get_backend_client)):
	template = ExerciseTemplate.model_validate(await ExerciseTemplatesApi(client).get(template_id))
	try:
		schema = ConfigurationSchema.create(template.configuracionSchema)
	except ValueError as e:
		raise HTTPException(status_code=502, detail=f"Template schema is invalid: {e}")
	return {
		"fields": schema.fields,
		"json_schema": schema.to_json_schema(),
		"defaults": schema.merge_with_defaults(template.configuracionDefault or {}),
	}


@router.get("/proof-points/{proof_point_id}")
async def list_exercises(proof_point_id: str, client: BackendClient = Depends(get_backend_client)):
	data = await ExerciseInstancesApi(client).by_proof_point(proof_point_id)
	exercises = [ExerciseInstance.model_validate(e) for e in data or []]
	exercises.sort(key=lambda e: e.orden)
	return {
		"exercises": [_describe(e) for e in exercises],
		"summary": status_summary(exercises),
		"pending_generation": len(pending_generation(exercises)),
	}


@router.post("/proof-points/{proof_point_id}", status_code=201)
async def add_exercise(
	proof_point_id: str,
	req: AddExerciseRequest,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	template = ExerciseTemplate.model_validate(await ExerciseTemplatesApi(client).get(req.template_id))
	try:
		payload = build_exercise_payload(
			template,
			nombre=req.nombre,
			configuracion=req.configuracion,
			descripcion_breve=req.descripcion_breve,
			consideraciones_contexto=req.consideraciones_contexto,
			duracion_estimada_minutos=req.duracion_estimada_minutos,
			es_obligatorio=req.es_obligatorio,
		)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	created = await ExerciseInstancesApi(client).create(proof_point_id, payload)
	show_toast(db, "success", f"Ejercicio \"{req.nombre}\" agregado")
	return created


@router.put("/proof-points/{proof_point_id}/reorder")
async def reorder_exercises(proof_point_id: str, req: ReorderRequest, client: BackendClient = Depends(get_backend_client)):
	return await ExerciseInstancesApi(client).reorder(proof_point_id, req.ids)


@router.post("/proof-points/{proof_point_id}/generate-batch")
async def generate_batch(
	proof_point_id: str,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	api = ExerciseInstancesApi(client)
	exercises = [ExerciseInstance.model_validate(e) for e in await api.by_proof_point(proof_point_id) or []]
	pending = pending_generation(exercises)
	if not pending:
		return {"queued": 0, "result": None}
	result = await api.generate_batch(proof_point_id)
	logger.info("Batch generation for %s: %d exercises", proof_point_id, len(pending))
	show_toast(db, "info", f"Generando contenido para {len(pending)} ejercicios")
	return {"queued": len(pending), "result": result}


@router.get("/{exercise_id}")
async def get_exercise(exercise_id: str, client: BackendClient = Depends(get_backend_client)):
	return _describe(await _load(ExerciseInstancesApi(client), exercise_id))


@router.put("/{exercise_id}")
async def update_exercise(exercise_id: str, data: Dict[str, Any], client: BackendClient = Depends(get_backend_client)):
	api = ExerciseInstancesApi(client)
	exercise = await _load(api, exercise_id)
	ensure_can_edit(exercise.estadoContenido)
	return await api.update(exercise_id, data)


@router.delete("/{exercise_id}", status_code=204)
async def delete_exercise(exercise_id: str, client: BackendClient = Depends(get_backend_client)):
	await ExerciseInstancesApi(client).delete(exercise_id)
	return Response(status_code=204)


@router.post("/{exercise_id}/generate")
async def generate_exercise(
	exercise_id: str,
	force: bool = False,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	api = ExerciseInstancesApi(client)
	exercise = await _load(api, exercise_id)
	ensure_can_generate(exercise.estadoContenido, force=force)
	result = await api.generate(exercise_id, force_regenerate=force)
	logger.info("Generation requested for %s (%s -> generando)", exercise_id, exercise.estadoContenido)
	show_toast(db, "info", f"Generando contenido de \"{exercise.nombre}\"")
	return result


@router.post("/{exercise_id}/publish")
async def publish_exercise(
	exercise_id: str,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	api = ExerciseInstancesApi(client)
	exercise = await _load(api, exercise_id)
	ensure_can_publish(exercise.estadoContenido)
	result = await api.publish(exercise_id)
	show_toast(db, "success", f"Ejercicio \"{exercise.nombre}\" publicado")
	return result


@router.post("/{exercise_id}/reset")
async def reset_exercise(
	exercise_id: str,
	client: BackendClient = Depends(get_backend_client),
	db: Session = Depends(get_db),
):
	api = ExerciseInstancesApi(client)
	exercise = await _load(api, exercise_id)
	ensure_can_reset(exercise)
	result = await api.update(exercise_id, {"estadoContenido": ContentStatus.SIN_GENERAR.value})
	logger.warning("Exercise %s was stuck in generando since %s; reset", exercise_id, exercise.updatedAt)
	show_toast(db, "warning", f"La generación de \"{exercise.nombre}\" se reinició")
	return result
