from __future__ import annotations
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .backend_client import BackendClient


def _seg(value: str) -> str:
	# Record ids look like "proofpoint:abc"; keep them as one path segment
	return quote(str(value), safe="")


class ProgramsApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def list(self, *, estado: Optional[str] = None, creador: Optional[str] = None) -> List[Dict[str, Any]]:
		params = {k: v for k, v in (("estado", estado), ("creador", creador)) if v}
		return await self.client.get("/programs", params=params or None)

	async def get(self, program_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/programs/{_seg(program_id)}")

	async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.post("/programs", data)

	async def create_from_wizard(self, data: Dict[str, Any]) -> Dict[str, Any]:
		# Creates program, phases and proof points in one backend transaction
		return await self.client.post("/programas", data)

	async def update(self, program_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.put(f"/programs/{_seg(program_id)}", data)

	async def delete(self, program_id: str) -> None:
		await self.client.delete(f"/programs/{_seg(program_id)}")

	async def publish(self, program_id: str) -> Dict[str, Any]:
		return await self.client.post(f"/programs/{_seg(program_id)}/publish")

	async def archive(self, program_id: str) -> Dict[str, Any]:
		return await self.client.post(f"/programs/{_seg(program_id)}/archive")

	async def versions(self, program_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/programas/{_seg(program_id)}/versiones")

	async def architecture(self, program_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/programas/{_seg(program_id)}/arquitectura")

	async def get_fase_documentation(self, fase_id: str) -> Optional[Dict[str, Any]]:
		return await self.client.get(f"/programas/fases/{_seg(fase_id)}/documentacion")

	async def save_fase_documentation(self, fase_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.put(f"/programas/fases/{_seg(fase_id)}/documentacion", data)


class FasesApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def by_program(self, program_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/programs/{_seg(program_id)}/fases")

	async def get(self, fase_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/fases/{_seg(fase_id)}")

	async def create(self, program_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.post(f"/programs/{_seg(program_id)}/fases", data)

	async def update(self, fase_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.put(f"/fases/{_seg(fase_id)}", data)

	async def delete(self, fase_id: str) -> None:
		await self.client.delete(f"/fases/{_seg(fase_id)}")

	async def reorder(self, program_id: str, fase_ids: List[str]) -> List[Dict[str, Any]]:
		return await self.client.put(f"/programs/{_seg(program_id)}/fases/reorder", {"faseIds": fase_ids})


class ProofPointsApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def by_fase(self, fase_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/fases/{_seg(fase_id)}/proof-points")

	async def get(self, proof_point_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/proof-points/{_seg(proof_point_id)}")

	async def create(self, fase_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.post(f"/fases/{_seg(fase_id)}/proof-points", data)

	async def update(self, proof_point_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.put(f"/proof-points/{_seg(proof_point_id)}", data)

	async def delete(self, proof_point_id: str) -> None:
		await self.client.delete(f"/proof-points/{_seg(proof_point_id)}")

	async def reorder(self, fase_id: str, proof_point_ids: List[str]) -> List[Dict[str, Any]]:
		return await self.client.put(
			f"/fases/{_seg(fase_id)}/proof-points/reorder",
			{"proofPointIds": proof_point_ids},
		)

	async def update_prerequisites(self, proof_point_id: str, prerequisite_ids: List[str]) -> Dict[str, Any]:
		return await self.client.put(
			f"/proofpoints/{_seg(proof_point_id)}/prerequisitos",
			{"prerequisitos": prerequisite_ids},
		)

	async def update_levels(self, proof_point_id: str, niveles: List[Dict[str, Any]]) -> Dict[str, Any]:
		return await self.update(proof_point_id, {"niveles": niveles})


class ArchitectureApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def reorder(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
		"""Persist ``orden`` for phases, proof points, levels or components.

		``items`` is a list of ``{"id": "fase:abc", "orden": 1}``.
		"""
		return await self.client.patch("/arquitectura/ordenar", {"items": items})


class ExerciseTemplatesApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def list(self, *, categoria: Optional[str] = None, official_only: bool = False) -> List[Dict[str, Any]]:
		params: Dict[str, Any] = {}
		if categoria:
			params["categoria"] = categoria
		if official_only:
			params["esOficial"] = "true"
		return await self.client.get("/exercise-templates", params=params or None)

	async def get(self, template_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/exercise-templates/{_seg(template_id)}")


class ExerciseInstancesApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def by_proof_point(self, proof_point_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/proof-points/{_seg(proof_point_id)}/exercises")

	async def get(self, exercise_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/exercises/{_seg(exercise_id)}")

	async def create(self, proof_point_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.post(f"/proof-points/{_seg(proof_point_id)}/exercises", data)

	async def update(self, exercise_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.put(f"/exercises/{_seg(exercise_id)}", data)

	async def delete(self, exercise_id: str) -> None:
		await self.client.delete(f"/exercises/{_seg(exercise_id)}")

	async def reorder(self, proof_point_id: str, exercise_ids: List[str]) -> List[Dict[str, Any]]:
		return await self.client.put(
			f"/proof-points/{_seg(proof_point_id)}/exercises/reorder",
			{"exerciseIds": exercise_ids},
		)

	async def generate(self, exercise_id: str, *, force_regenerate: bool = False) -> Dict[str, Any]:
		return await self.client.post(f"/exercises/{_seg(exercise_id)}/generate", {"forceRegenerate": force_regenerate})

	async def generate_batch(self, proof_point_id: str) -> Dict[str, Any]:
		return await self.client.post(f"/exercise-generation/proof-point/{_seg(proof_point_id)}/batch")

	async def publish(self, exercise_id: str) -> Dict[str, Any]:
		return await self.client.post(f"/exercises/{_seg(exercise_id)}/publish")


class CohortsApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def list(self) -> List[Dict[str, Any]]:
		return await self.client.get("/cohortes")

	async def get(self, cohort_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/cohortes/{_seg(cohort_id)}")

	async def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.post("/cohortes", payload)

	async def students(self, cohort_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/cohortes/{_seg(cohort_id)}/estudiantes")

	async def enroll_student(self, cohort_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
		return await self.client.post(f"/cohortes/{_seg(cohort_id)}/estudiantes", payload)

	async def communications(self, cohort_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/cohortes/{_seg(cohort_id)}/comunicaciones")

	async def submissions(self, cohort_id: str, *, limit: int = 50) -> List[Dict[str, Any]]:
		return await self.client.get(f"/instructor/cohortes/{_seg(cohort_id)}/submissions", params={"limit": limit})

	async def progress_overview(self, cohort_id: str) -> Optional[Dict[str, Any]]:
		return await self.client.get(f"/instructor/cohortes/{_seg(cohort_id)}/progress-overview")


class ComponentContentApi:
	def __init__(self, client: BackendClient) -> None:
		self.client = client

	async def get(self, component_id: str) -> Dict[str, Any]:
		return await self.client.get(f"/componentes/{_seg(component_id)}/contenido")

	async def save(self, component_id: str, contenido: Dict[str, Any]) -> Dict[str, Any]:
		# Saved as a draft version on the backend
		return await self.client.put(f"/componentes/{_seg(component_id)}/contenido", {"contenido": contenido})

	async def publish(self, componente_contenido_id: str) -> Dict[str, Any]:
		return await self.client.post("/contenido/publicar", {"componenteContenidoId": componente_contenido_id})

	async def history(self, component_id: str) -> List[Dict[str, Any]]:
		return await self.client.get(f"/contenido/historial/{_seg(component_id)}")

	async def restore(self, component_id: str, version_id: str, razon: Optional[str] = None) -> Dict[str, Any]:
		return await self.client.post(
			"/contenido/restaurar",
			{"componenteId": component_id, "versionId": version_id, "razon": razon},
		)
