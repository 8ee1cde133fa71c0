from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple, TypeVar

from .backend_api import ArchitectureApi
from .backend_client import ApiClientError
from .schemas import Program

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Rendered card sizes, used to anchor edges at node centers
NODE_SIZES: Dict[str, Tuple[int, int]] = {
	"programa": (300, 100),
	"fase": (250, 120),
	"proofPoint": (220, 100),
}

PROGRAM_POSITION = (50, 300)
PHASE_X0 = 450
PHASE_DX = 300
PHASE_Y = 100
PROOF_POINT_Y0 = 300
PROOF_POINT_DY = 150


@dataclass
class RoadmapNode:
	id: str
	type: str
	x: float
	y: float
	data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RoadmapEdge:
	id: str
	source: str
	target: str
	type: str = "normal"


def build_roadmap(program: Program, *, editable: bool = True) -> Tuple[List[RoadmapNode], List[RoadmapEdge]]:
	nodes: List[RoadmapNode] = []
	edges: List[RoadmapEdge] = []
	program_node_id = f"programa-{program.id}"

	nodes.append(RoadmapNode(
		id=program_node_id,
		type="programa",
		x=PROGRAM_POSITION[0],
		y=PROGRAM_POSITION[1],
		data={
			"nombre": program.nombre,
			"fases_count": len(program.fases),
			"pp_count": program.proof_point_count(),
		},
	))

	for fase_idx, fase in enumerate(program.fases):
		fase_node_id = f"fase-{fase.id}"
		x = PHASE_X0 + fase_idx * PHASE_DX
		nodes.append(RoadmapNode(
			id=fase_node_id,
			type="fase",
			x=x,
			y=PHASE_Y,
			data={
				"numero": fase.numero,
				"nombre": fase.nombre,
				"proof_points_count": len(fase.proof_points),
				"duracion_semanas": fase.duracion_semanas,
				"documentacion_completa": fase.documentacion_completa,
				"editable": editable,
			},
		))
		edges.append(RoadmapEdge(id=f"e-programa-{fase.id}", source=program_node_id, target=fase_node_id))

		for pp_idx, pp in enumerate(fase.proof_points):
			pp_node_id = f"pp-{pp.id}"
			nodes.append(RoadmapNode(
				id=pp_node_id,
				type="proofPoint",
				x=x,
				y=PROOF_POINT_Y0 + pp_idx * PROOF_POINT_DY,
				data={
					"nombre": pp.nombre,
					"niveles_count": pp.numero_niveles,
					"prerequisitos_count": len(pp.prerequisitos),
					"contenido_listo": pp.content_ready,
					"editable": editable,
				},
			))
			edges.append(RoadmapEdge(id=f"e-fase-{pp.id}", source=fase_node_id, target=pp_node_id))
			for prereq_id in pp.prerequisitos:
				edges.append(RoadmapEdge(
					id=f"e-prereq-{pp.id}-{prereq_id}",
					source=f"pp-{prereq_id}",
					target=pp_node_id,
					type="prerequisite",
				))

	return nodes, edges


def node_center(nodes: List[RoadmapNode], node_id: str) -> Tuple[float, float]:
	node = next((n for n in nodes if n.id == node_id), None)
	if node is None:
		return (0, 0)
	width, height = NODE_SIZES.get(node.type, NODE_SIZES["programa"])
	return (node.x + width / 2, node.y + height / 2)


def dangling_edges(nodes: List[RoadmapNode], edges: List[RoadmapEdge]) -> List[RoadmapEdge]:
	"""Prerequisite edges whose source proof point is not in the program."""
	known = {n.id for n in nodes}
	return [e for e in edges if e.source not in known]


def move_item(items: List[T], from_index: int, to_index: int) -> List[T]:
	if not 0 <= from_index < len(items):
		raise IndexError(f"from_index {from_index} out of range for {len(items)} items")
	if not 0 <= to_index < len(items):
		raise IndexError(f"to_index {to_index} out of range for {len(items)} items")
	moved = list(items)
	item = moved.pop(from_index)
	moved.insert(to_index, item)
	return moved


def roadmap_payload(program: Program, *, editable: bool = True) -> Dict[str, Any]:
	nodes, edges = build_roadmap(program, editable=editable)
	return {
		"programa_id": program.id,
		"nodes": [asdict(n) for n in nodes],
		"edges": [asdict(e) for e in edges],
		"dangling_edges": [e.id for e in dangling_edges(nodes, edges)],
	}


class RoadmapEditor:
	"""Working copy of one program tree behind the roadmap canvas.

	Reorders are applied to the local tree first, then persisted through
	``PATCH /arquitectura/ordenar``. If the backend rejects the change the tree
	is restored to the snapshot taken before the move and the error propagates.
	Reorders on one editor run one at a time so a snapshot never includes a
	move the backend has not confirmed yet.
	"""

	def __init__(self, program: Program, *, edition_mode: bool = True) -> None:
		self.program = program
		self.edition_mode = edition_mode
		self._reorder_lock = asyncio.Lock()

	def replace(self, program: Program) -> None:
		self.program = program

	@property
	def nodes(self) -> List[RoadmapNode]:
		return build_roadmap(self.program, editable=self.edition_mode)[0]

	@property
	def edges(self) -> List[RoadmapEdge]:
		return build_roadmap(self.program, editable=self.edition_mode)[1]

	def payload(self) -> Dict[str, Any]:
		data = roadmap_payload(self.program, editable=self.edition_mode)
		data["edition_mode"] = self.edition_mode
		return data

	def export_json(self) -> Dict[str, Any]:
		return {
			"programa": self.program.model_dump(mode="json"),
			**roadmap_payload(self.program, editable=False),
		}

	def _find_phase(self, fase_id: str):
		for fase in self.program.fases:
			if fase.id == fase_id:
				return fase
		raise KeyError(fase_id)

	async def reorder_phases(self, api: ArchitectureApi, from_index: int, to_index: int) -> Program:
		self._require_edition()
		async with self._reorder_lock:
			snapshot = self.program.model_copy(deep=True)
			fases = move_item(self.program.fases, from_index, to_index)
			for position, fase in enumerate(fases, start=1):
				fase.orden = position
				fase.numero = position
			self.program.fases = fases
			await self._persist(api, [{"id": f.id, "orden": f.orden} for f in fases], snapshot)
			return self.program

	async def reorder_proof_points(self, api: ArchitectureApi, fase_id: str, from_index: int, to_index: int) -> Program:
		self._require_edition()
		async with self._reorder_lock:
			snapshot = self.program.model_copy(deep=True)
			fase = self._find_phase(fase_id)
			proof_points = move_item(fase.proof_points, from_index, to_index)
			for position, pp in enumerate(proof_points, start=1):
				pp.orden = position
			fase.proof_points = proof_points
			await self._persist(api, [{"id": pp.id, "orden": pp.orden} for pp in proof_points], snapshot)
			return self.program

	async def _persist(self, api: ArchitectureApi, items: List[Dict[str, Any]], snapshot: Program) -> None:
		try:
			await api.reorder(items)
		except ApiClientError:
			logger.warning("Reorder of program %s rejected; restoring previous order", self.program.id)
			self.program = snapshot
			raise

	def _require_edition(self) -> None:
		if not self.edition_mode:
			raise PermissionError("roadmap is read-only; enable edition mode first")


_editors: Dict[str, RoadmapEditor] = {}


def get_editor(program_id: str) -> Optional[RoadmapEditor]:
	return _editors.get(program_id)


def open_editor(program: Program, *, edition_mode: bool = True) -> RoadmapEditor:
	editor = _editors.get(program.id)
	if editor is None:
		editor = RoadmapEditor(program, edition_mode=edition_mode)
		_editors[program.id] = editor
	else:
		editor.replace(program)
	return editor


def close_editor(program_id: str) -> None:
	_editors.pop(program_id, None)
