from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .schemas import ExerciseInstance, ExerciseTemplate
from .settings import settings

logger = logging.getLogger(__name__)


class InvalidTransition(Exception):
	def __init__(self, current: str, action: str) -> None:
		super().__init__(f"Cannot {action} an exercise in state '{current}'")
		self.current = current
		self.action = action


class ContentStatus(str, Enum):
	SIN_GENERAR = "sin_generar"
	GENERANDO = "generando"
	GENERADO = "generado"
	DRAFT = "draft"
	PUBLICADO = "publicado"
	ERROR = "error"

	@property
	def can_generate(self) -> bool:
		return self in (ContentStatus.SIN_GENERAR, ContentStatus.ERROR)

	@property
	def can_edit(self) -> bool:
		return self in (ContentStatus.DRAFT, ContentStatus.GENERADO)

	@property
	def can_publish(self) -> bool:
		return self in (ContentStatus.DRAFT, ContentStatus.GENERADO)


def ensure_can_generate(status: str, *, force: bool = False) -> None:
	current = ContentStatus(status)
	if current.can_generate:
		return
	# Regeneration replaces existing content; never while a run is in flight or after publishing
	if force and current in (ContentStatus.GENERADO, ContentStatus.DRAFT):
		return
	raise InvalidTransition(current.value, "generate")


def ensure_can_edit(status: str) -> None:
	if not ContentStatus(status).can_edit:
		raise InvalidTransition(status, "edit")


def ensure_can_publish(status: str) -> None:
	if not ContentStatus(status).can_publish:
		raise InvalidTransition(status, "publish")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
	if not value:
		return None
	try:
		parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	except ValueError:
		return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=timezone.utc)
	return parsed


def is_stuck(exercise: ExerciseInstance, *, now: Optional[datetime] = None, minutes: Optional[int] = None) -> bool:
	if exercise.estadoContenido != ContentStatus.GENERANDO.value:
		return False
	updated = _parse_timestamp(exercise.updatedAt)
	if updated is None:
		return False
	now = now or datetime.now(timezone.utc)
	limit = timedelta(minutes=minutes if minutes is not None else settings.generation_stuck_minutes)
	return now - updated > limit


def ensure_can_reset(exercise: ExerciseInstance, *, now: Optional[datetime] = None) -> None:
	if not is_stuck(exercise, now=now):
		raise InvalidTransition(exercise.estadoContenido, "reset")


def pending_generation(instances: Iterable[ExerciseInstance]) -> List[ExerciseInstance]:
	return [e for e in instances if ContentStatus(e.estadoContenido).can_generate]


def status_summary(instances: Iterable[ExerciseInstance]) -> Dict[str, int]:
	counts = {s.value: 0 for s in ContentStatus}
	for e in instances:
		counts[e.estadoContenido] += 1
	return counts


CONFIG_FIELD_TYPES = ("number", "boolean", "string", "select", "multiselect", "text")


class ConfigurationSchema:
	"""Field map describing how an exercise template can be configured.

	Templates store either the internal representation
	(``{"field": {"type": ..., "label": ...}}``) or a JSON Schema object with
	``properties``. Both are accepted; a JSON Schema source is returned as-is
	by :meth:`to_json_schema`.
	"""

	def __init__(self, fields: Dict[str, Dict[str, Any]], source_schema: Optional[Dict[str, Any]] = None) -> None:
		self.fields = fields
		self.source_schema = source_schema
		self._validate()

	@classmethod
	def create(cls, schema: Optional[Dict[str, Any]]) -> "ConfigurationSchema":
		if not schema:
			return cls({})
		if "properties" in schema:
			return cls(cls._from_json_schema(schema), schema)
		return cls(dict(schema))

	def _validate(self) -> None:
		for name, field in self.fields.items():
			if not field.get("type"):
				raise ValueError(f'Field "{name}" must have a type')
			if field["type"] not in CONFIG_FIELD_TYPES:
				raise ValueError(f'Field "{name}" has unknown type "{field["type"]}"')
			if not field.get("label"):
				raise ValueError(f'Field "{name}" must have a label')
			if field["type"] == "select" and not field.get("options"):
				raise ValueError(f'Select field "{name}" must have options')

	def validate_configuration(self, config: Dict[str, Any]) -> Tuple[bool, List[str]]:
		errors: List[str] = []
		for name, field in self.fields.items():
			value = config.get(name)
			if value is None:
				if field.get("required"):
					errors.append(f'Field "{name}" is required')
				continue
			ftype = field["type"]
			options = field.get("options")
			if ftype == "number":
				# bool is an int subclass in Python
				if isinstance(value, bool) or not isinstance(value, (int, float)):
					errors.append(f'Field "{name}" must be a number')
					continue
				if field.get("min") is not None and value < field["min"]:
					errors.append(f'Field "{name}" must be >= {field["min"]}')
				if field.get("max") is not None and value > field["max"]:
					errors.append(f'Field "{name}" must be <= {field["max"]}')
			elif ftype == "boolean":
				if not isinstance(value, bool):
					errors.append(f'Field "{name}" must be a boolean')
			elif ftype in ("string", "text"):
				if not isinstance(value, str):
					errors.append(f'Field "{name}" must be a string')
			elif ftype == "select":
				if options and value not in options:
					errors.append(f'Field "{name}" must be one of: {", ".join(map(str, options))}')
			elif ftype == "multiselect":
				if not isinstance(value, list):
					errors.append(f'Field "{name}" must be an array')
				elif options:
					invalid = [v for v in value if v not in options]
					if invalid:
						errors.append(f'Field "{name}" contains invalid options: {", ".join(map(str, invalid))}')
		return not errors, errors

	def merge_with_defaults(self, config: Dict[str, Any]) -> Dict[str, Any]:
		result: Dict[str, Any] = {}
		for name, field in self.fields.items():
			if config.get(name) is not None:
				result[name] = config[name]
			elif field.get("default") is not None:
				result[name] = field["default"]
		return result

	def to_json_schema(self) -> Dict[str, Any]:
		if self.source_schema and self.source_schema.get("properties"):
			return self.source_schema
		properties: Dict[str, Any] = {}
		required: List[str] = []
		for name, field in self.fields.items():
			prop: Dict[str, Any] = {
				"type": _JSON_TYPES.get(field["type"], "string"),
				"description": field.get("description") or field.get("label") or name,
			}
			if field.get("default") is not None:
				prop["default"] = field["default"]
			if field.get("min") is not None:
				prop["minimum"] = field["min"]
			if field.get("max") is not None:
				prop["maximum"] = field["max"]
			if field.get("options"):
				if field["type"] == "multiselect":
					prop["type"] = "array"
					prop["items"] = {"type": "string", "enum": field["options"]}
				else:
					prop["enum"] = field["options"]
			properties[name] = prop
			if field.get("required"):
				required.append(name)
		schema: Dict[str, Any] = {"type": "object", "properties": properties}
		if required:
			schema["required"] = required
		return schema

	@staticmethod
	def _from_json_schema(schema: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
		required = set(schema.get("required") or [])
		fields: Dict[str, Dict[str, Any]] = {}
		for name, prop in (schema.get("properties") or {}).items():
			if not isinstance(prop, dict):
				continue
			items = prop.get("items") if isinstance(prop.get("items"), dict) else {}
			options = prop.get("enum") or items.get("enum") or None
			fields[name] = {
				"type": _config_type(prop),
				"label": prop.get("description") or prop.get("title") or name,
				"description": prop.get("description"),
				"default": prop.get("default"),
				"required": name in required,
				"min": prop.get("minimum"),
				"max": prop.get("maximum"),
				"options": options,
			}
		return fields


_JSON_TYPES = {"number": "number", "boolean": "boolean", "multiselect": "array"}


def _config_type(prop: Dict[str, Any]) -> str:
	if prop.get("enum"):
		return "select"
	items = prop.get("items") if isinstance(prop.get("items"), dict) else {}
	jtype = prop.get("type")
	if jtype == "array" and items.get("enum"):
		return "multiselect"
	if jtype in ("number", "integer"):
		return "number"
	if jtype == "boolean":
		return "boolean"
	if jtype == "array":
		return "multiselect"
	if jtype == "object":
		return "text"
	return "string"


def build_exercise_payload(
	template: ExerciseTemplate,
	*,
	nombre: str,
	configuracion: Optional[Dict[str, Any]] = None,
	descripcion_breve: Optional[str] = None,
	consideraciones_contexto: str = "",
	duracion_estimada_minutos: Optional[int] = None,
	es_obligatorio: bool = False,
) -> Dict[str, Any]:
	"""Validate the instructor's configuration and build the create body.

	Raises ``ValueError`` with every validation message joined when the
	configuration does not match the template's schema.
	"""
	schema = ConfigurationSchema.create(template.configuracionSchema)
	provided = {**(template.configuracionDefault or {}), **(configuracion or {})}
	merged = schema.merge_with_defaults(provided)
	valid, errors = schema.validate_configuration(merged)
	if not valid:
		raise ValueError("; ".join(errors))
	payload: Dict[str, Any] = {
		"templateId": template.id,
		"nombre": nombre,
		"consideracionesContexto": consideraciones_contexto,
		"configuracionPersonalizada": merged,
		"esObligatorio": es_obligatorio,
	}
	if descripcion_breve:
		payload["descripcionBreve"] = descripcion_breve
	if duracion_estimada_minutos is not None:
		payload["duracionEstimadaMinutos"] = duracion_estimada_minutos
	return payload


CATEGORY_METADATA: Dict[str, Dict[str, str]] = {
	"leccion_interactiva": {
		"nombre": "Lección Interactiva",
		"icono": "📖",
		"color": "#6366f1",
		"descripcionCorta": "Transmitir conocimiento conceptual de manera activa",
	},
	"cuaderno_trabajo": {
		"nombre": "Cuaderno de Trabajo",
		"icono": "📝",
		"color": "#8b5cf6",
		"descripcionCorta": "Ejercicios estructurados con retroalimentación inmediata",
	},
	"simulacion_interaccion": {
		"nombre": "Simulación de Interacción",
		"icono": "💬",
		"color": "#ec4899",
		"descripcionCorta": "Practicar conversaciones y situaciones del mundo real",
	},
	"mentor_asesor_ia": {
		"nombre": "Mentor y Asesor IA",
		"icono": "🤖",
		"color": "#06b6d4",
		"descripcionCorta": "Guía personalizada y feedback continuo",
	},
	"herramienta_analisis": {
		"nombre": "Herramienta de Análisis",
		"icono": "🔍",
		"color": "#10b981",
		"descripcionCorta": "Evaluar y obtener feedback sobre trabajo existente",
	},
	"herramienta_creacion": {
		"nombre": "Herramienta de Creación",
		"icono": "🎨",
		"color": "#f59e0b",
		"descripcionCorta": "Generar artefactos guiados por IA",
	},
	"sistema_tracking": {
		"nombre": "Sistema de Tracking",
		"icono": "📊",
		"color": "#3b82f6",
		"descripcionCorta": "Monitorear progreso y hábitos de aprendizaje",
	},
	"herramienta_revision": {
		"nombre": "Herramienta de Revisión",
		"icono": "✅",
		"color": "#14b8a6",
		"descripcionCorta": "Revisión y mejora iterativa de entregables",
	},
	"simulador_entorno": {
		"nombre": "Simulador de Entorno",
		"icono": "🌐",
		"color": "#6366f1",
		"descripcionCorta": "Entorno virtual para practicar sin riesgos",
	},
	"sistema_progresion": {
		"nombre": "Sistema de Progresión",
		"icono": "🎯",
		"color": "#a855f7",
		"descripcionCorta": "Desbloqueables y reconocimiento de logros",
	},
}
