from __future__ import annotations
import json
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from ..backend_api import ArchitectureApi, ProgramsApi
from ..backend_client import BackendClient, get_backend_client
from ..roadmap import RoadmapEditor, close_editor, get_editor, open_editor
from ..schemas import Program

router = APIRouter(prefix="/roadmap", tags=["roadmap"])


class MoveRequest(BaseModel):
	from_index: int = Field(ge=0)
	to_index: int = Field(ge=0)


class MoveProofPointRequest(MoveRequest):
	fase_id: str


class EditionModeRequest(BaseModel):
	enabled: bool


def _editor_or_404(program_id: str) -> RoadmapEditor:
	editor = get_editor(program_id)
	if editor is None:
		raise HTTPException(status_code=404, detail="Roadmap not loaded; GET /roadmap/{program_id} first")
	return editor


@router.get("/{program_id}")
async def load_roadmap(program_id: str, edition_mode: bool = False, client: BackendClient = Depends(get_backend_client)):
	data = await ProgramsApi(client).architecture(program_id)
	if not data:
		raise HTTPException(status_code=404, detail="Programa no encontrado")
	editor = open_editor(Program.model_validate(data), edition_mode=edition_mode)
	editor.edition_mode = edition_mode
	return editor.payload()


@router.put("/{program_id}/edition-mode")
async def set_edition_mode(program_id: str, req: EditionModeRequest):
	editor = _editor_or_404(program_id)
	editor.edition_mode = req.enabled
	return editor.payload()


@router.post("/{program_id}/reorder-phases")
async def reorder_phases(program_id: str, req: MoveRequest, client: BackendClient = Depends(get_backend_client)):
	editor = _editor_or_404(program_id)
	try:
		await editor.reorder_phases(ArchitectureApi(client), req.from_index, req.to_index)
	except IndexError as e:
		raise HTTPException(status_code=400, detail=str(e))
	except PermissionError as e:
		raise HTTPException(status_code=409, detail=str(e))
	return editor.payload()


@router.post("/{program_id}/reorder-proof-points")
async def reorder_proof_points(program_id: str, req: MoveProofPointRequest, client: BackendClient = Depends(get_backend_client)):
	editor = _editor_or_404(program_id)
	try:
		await editor.reorder_proof_points(ArchitectureApi(client), req.fase_id, req.from_index, req.to_index)
	except KeyError:
		raise HTTPException(status_code=404, detail=f"Fase {req.fase_id} not in program")
	except IndexError as e:
		raise HTTPException(status_code=400, detail=str(e))
	except PermissionError as e:
		raise HTTPException(status_code=409, detail=str(e))
	return editor.payload()


@router.get("/{program_id}/export")
async def export_roadmap(program_id: str):
	editor = _editor_or_404(program_id)
	body = json.dumps(editor.export_json(), ensure_ascii=False, indent=2)
	return Response(
		content=body,
		media_type="application/json",
		headers={"Content-Disposition": f'attachment; filename="roadmap-{program_id}.json"'},
	)


@router.delete("/{program_id}", status_code=204)
async def close_roadmap(program_id: str):
	close_editor(program_id)
	return Response(status_code=204)
