from __future__ import annotations
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .schemas import Cohort, Communication, ProgressRecord, Student

STUDENT_STATUS_LABELS = {
	"activo": "Activo",
	"en_riesgo": "En Riesgo",
	"inactivo": "Inactivo",
	"completado": "Completado",
}

COMMUNICATION_TYPE_LABELS = {
	"anuncio": "Anuncio",
	"mensaje_individual": "Mensaje Individual",
	"recordatorio_automatico": "Recordatorio Automático",
}


def filter_students(students: Iterable[Student], *, search: str = "", status: str = "todos") -> List[Student]:
	query = search.lower()
	return [
		s for s in students
		if (query in s.nombre.lower() or query in s.email.lower())
		and (status == "todos" or s.estado == status)
	]


def toggle_student(selected: List[str], student_id: str) -> List[str]:
	if student_id in selected:
		return [sid for sid in selected if sid != student_id]
	return selected + [student_id]


def toggle_all(selected: List[str], visible: List[Student]) -> List[str]:
	# Everything visible already selected -> clear
	if set(selected) >= {s.id for s in visible}:
		return []
	return [s.id for s in visible]


def _parse(value: str) -> datetime:
	parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


def time_ago(value: Optional[str], *, now: Optional[datetime] = None) -> Optional[str]:
	if not value:
		return None
	now = now or datetime.now(timezone.utc)
	seconds = (now - _parse(value)).total_seconds()
	days = int(seconds // 86400)
	hours = int(seconds // 3600)
	if days > 0:
		return f"hace {days} día{'s' if days > 1 else ''}"
	if hours > 0:
		return f"hace {hours} hora{'s' if hours > 1 else ''}"
	return "hace unos minutos"


def student_rows(students: Iterable[Student], *, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
	rows = []
	for s in students:
		row = s.model_dump()
		row["estado_label"] = STUDENT_STATUS_LABELS.get(s.estado, s.estado)
		row["ultima_actividad_label"] = time_ago(s.ultima_actividad, now=now)
		rows.append(row)
	return rows


def filter_cohorts(cohorts: Iterable[Cohort], *, search: str = "", status: str = "todas") -> List[Cohort]:
	query = search.lower()
	result = []
	for c in cohorts:
		programa = c.programa.nombre if c.programa else ""
		if status != "todas" and c.estado != status:
			continue
		if query and query not in c.nombre.lower() and query not in programa.lower():
			continue
		result.append(c)
	return result


def cohort_status_counts(cohorts: List[Cohort]) -> Dict[str, int]:
	counts = {"todas": len(cohorts), "activa": 0, "proxima": 0, "finalizada": 0}
	for c in cohorts:
		if c.estado in counts:
			counts[c.estado] += 1
	return counts


def communication_history(communications: Iterable[Communication]) -> List[Dict[str, Any]]:
	"""Newest first, with a display label and open rate per message."""
	ordered = sorted(communications, key=lambda c: _parse(c.fecha_envio), reverse=True)
	history = []
	for c in ordered:
		entry = c.model_dump()
		entry["tipo_label"] = COMMUNICATION_TYPE_LABELS[c.tipo]
		entry["tasa_apertura"] = round(c.abierto_por / c.destinatarios * 100) if c.destinatarios else 0
		history.append(entry)
	return history


# Cohort analytics

AT_RISK_LIMIT = 12
SCORED_STATUSES = {"graded", "approved"}
ATTENTION_STATUSES = {"pending_review", "submitted_for_review", "requires_iteration", "in_progress"}

_RECORD_THING = re.compile(r"^type::thing\((.*)\)$", re.IGNORECASE)
_QUOTED = re.compile(r"^['\"`](.*)['\"`]$")
_BRACKETS = re.compile(r"[<>⟨⟩]")


def normalize_id(value: Any) -> str:
	"""Bare record key: ``type::thing(ejercicio:⟨abc⟩)`` and ``ejercicio:abc`` both give ``abc``."""
	if not value:
		return ""
	text = _QUOTED.sub(r"\1", _RECORD_THING.sub(r"\1", str(value)))
	_, sep, rest = text.partition(":")
	return _BRACKETS.sub("", rest if sep else text).strip()


def _exercise_id(source: Any) -> str:
	if isinstance(source, str):
		return source
	if isinstance(source, dict):
		for key in ("id", "exerciseId", "exercise_instance", "@id"):
			if isinstance(source.get(key), str):
				return source[key]
	return ""


def _exercise_entry(source: Any) -> Dict[str, Any]:
	data = source if isinstance(source, dict) else {}
	return {
		"id": _exercise_id(source),
		"nombre": data.get("nombre") or "Ejercicio",
		"estadoContenido": data.get("estadoContenido") or data.get("estado_contenido"),
		"esObligatorio": data.get("esObligatorio", data.get("es_obligatorio")),
	}


def _phase_key(phase: Dict[str, Any], index: int) -> str:
	for key in ("id", "slug", "nombre"):
		if phase.get(key):
			return str(phase[key])
	return f"phase-{index}"


def analytics_outline(phases: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
	"""Phase / proof point / exercise tree taken from a cohort structure snapshot."""
	outline = []
	for index, phase in enumerate(phases):
		nombre = phase.get("nombre") or f"Fase {index + 1}"
		proof_points = []
		for pp in phase.get("proofPoints") or phase.get("proof_points") or []:
			if not pp or not pp.get("id"):
				continue
			exercises = pp.get("exercises") or pp.get("ejercicios") or []
			proof_points.append({
				"id": pp["id"],
				"nombre": pp.get("nombre") or "Proof Point",
				"fase_nombre": nombre,
				"ejercicios": [_exercise_entry(e) for e in exercises],
			})
		outline.append({"id": _phase_key(phase, index), "nombre": nombre, "proof_points": proof_points})
	return outline


def set_proof_point_exercises(outline: List[Dict[str, Any]], proof_point_id: str, exercises: Iterable[Any]) -> None:
	for phase in outline:
		for pp in phase["proof_points"]:
			if pp["id"] == proof_point_id:
				pp["ejercicios"] = [_exercise_entry(e) for e in exercises]


def _round(value: float) -> int:
	# Half up, not banker's rounding
	return int(math.floor(value + 0.5))


def _percentage(value: Optional[float]) -> float:
	if value is None or math.isnan(value):
		return 0.0
	return max(0.0, min(100.0, value))


def _timestamp(value: Optional[str]) -> Optional[datetime]:
	if not value:
		return None
	try:
		return _parse(value)
	except ValueError:
		return None


def _record_time(record: ProgressRecord, *fields: str) -> Optional[datetime]:
	for name in fields:
		parsed = _timestamp(getattr(record, name))
		if parsed is not None:
			return parsed
	return None


def _score(record: ProgressRecord) -> Optional[float]:
	for value in (record.finalScore, record.instructorScore, record.aiScore):
		if value is not None:
			return value
	return None


def submission_rows(submissions: Iterable[Dict[str, Any]], *, now: datetime) -> List[Dict[str, Any]]:
	rows = []
	for s in submissions:
		ai_score = s.get("aiScore")
		rows.append({
			"progress_id": s.get("progressId"),
			"estudiante": s.get("estudianteNombre") or "Estudiante",
			"ejercicio": s.get("ejercicioNombre") or "Ejercicio",
			"entregado_el": s.get("entregadoEl") or now.isoformat(),
			"status": s.get("status") or "pending_review",
			"ai_score": _round(ai_score) if isinstance(ai_score, (int, float)) and not isinstance(ai_score, bool) else None,
		})
	return rows


def _at_risk_entry(
	student_id: str,
	records: List[ProgressRecord],
	exercise_total: int,
	lookup: Dict[str, Dict[str, Any]],
	now: datetime,
) -> Dict[str, Any]:
	nombre = next((r.estudianteNombre for r in records if r.estudianteNombre), "Estudiante")
	denominator = exercise_total or max(len(records), 1)
	progreso = min(100, _round(sum(_percentage(r.porcentajeCompletitud) for r in records) / denominator))

	activity = [t for t in (_record_time(r, "updatedAt", "gradedAt", "submittedAt") for r in records) if t]
	if activity:
		dias_inactivo = max(0, (now - max(activity)).days)
	else:
		dias_inactivo = 99

	epoch = datetime.min.replace(tzinfo=timezone.utc)
	pending = sorted(
		(r for r in records if r.status in ATTENTION_STATUSES),
		key=lambda r: _record_time(r, "updatedAt", "submittedAt", "gradedAt") or epoch,
		reverse=True,
	)
	current = lookup.get(normalize_id(pending[0].exerciseInstanceId)) if pending else None
	return {
		"id": student_id,
		"nombre": nombre,
		"progreso": progreso,
		"dias_inactivo": dias_inactivo,
		"ejercicio_actual": current["ejercicio_nombre"] if current else None,
	}


def cohort_analytics(
	outline: List[Dict[str, Any]],
	records: Iterable[ProgressRecord],
	submissions: Iterable[Dict[str, Any]] = (),
	*,
	total_students: int = 0,
	now: Optional[datetime] = None,
) -> Dict[str, Any]:
	"""Per-phase progress and scores, students needing attention and recent submissions.

	Phase progress is the summed completion of the phase's exercises over
	``exercises x students``; when the cohort reports no enrolment the number
	of distinct students with progress is used instead. The phase score is the
	mean of graded or approved records (final, then instructor, then AI
	score). Students are ranked by lowest progress, then longest inactivity.
	"""
	now = now or datetime.now(timezone.utc)
	records = list(records)

	lookup: Dict[str, Dict[str, Any]] = {}
	phase_exercises: Dict[str, set] = {}
	proof_points: List[Dict[str, Any]] = []
	published = 0
	for phase in outline:
		keys = phase_exercises.setdefault(phase["id"], set())
		for pp in phase["proof_points"]:
			proof_points.append(pp)
			for exercise in pp["ejercicios"]:
				if (exercise.get("estadoContenido") or "").lower() == "publicado":
					published += 1
				key = normalize_id(exercise["id"])
				if not key:
					continue
				keys.add(key)
				lookup[key] = {
					"fase_id": phase["id"],
					"proof_point_id": pp["id"],
					"ejercicio_nombre": exercise["nombre"],
				}

	by_exercise: Dict[str, List[ProgressRecord]] = {}
	by_student: Dict[str, List[ProgressRecord]] = {}
	for record in records:
		by_exercise.setdefault(normalize_id(record.exerciseInstanceId), []).append(record)
		if record.estudianteId:
			by_student.setdefault(record.estudianteId, []).append(record)

	student_count = total_students if total_students > 0 else max(len(by_student), 1)

	phases = []
	for phase in outline:
		keys = phase_exercises[phase["id"]]
		related = [r for key in keys for r in by_exercise.get(key, [])]
		entry = {"id": phase["id"], "nombre": phase["nombre"], "progreso": 0, "promedio_score": None}
		if related:
			total = sum(_percentage(r.porcentajeCompletitud) for r in related)
			entry["progreso"] = min(100, _round(total / (len(keys) * student_count)))
			scores = [s for s in (_score(r) for r in related if r.status in SCORED_STATUSES) if s is not None]
			if scores:
				entry["promedio_score"] = _round(sum(scores) / len(scores))
		phases.append(entry)

	exercise_total = len(lookup) or sum(len(pp["ejercicios"]) for pp in proof_points)
	at_risk = [
		_at_risk_entry(student_id, student_records, exercise_total, lookup, now)
		for student_id, student_records in by_student.items()
	]
	at_risk.sort(key=lambda s: (s["progreso"], -s["dias_inactivo"]))

	return {
		"total_students": total_students,
		"phases": phases,
		"proof_points": proof_points,
		"ejercicios_count": len(lookup),
		"published_exercises_count": published,
		"has_published_exercises": published > 0,
		"at_risk_students": at_risk[:AT_RISK_LIMIT],
		"submissions": submission_rows(submissions, now=now),
	}
