from __future__ import annotations

import re
import unicodedata
import uuid
from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator


# Program wizard

WIZARD_STEPS = {
    1: "Información básica",
    2: "Fases",
    3: "Proof points",
    4: "Revisión",
}


def proof_point_slug(nombre: str) -> str:
    decomposed = unicodedata.normalize("NFD", nombre.lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", "-", ascii_only).strip("-")


class ProofPointForm(BaseModel):
    nombre_pp: str = ""
    slug_pp: str = ""
    descripcion_pp: str = ""
    pregunta_central: str = ""
    tipo_entregable: str = ""
    numero_niveles: int = 3
    prerequisitos: List[str] = Field(default_factory=list)
    duracion_estimada_horas: int = 0


class FaseForm(BaseModel):
    numero_fase: int = 1
    nombre_fase: str = ""
    descripcion_fase: str = ""
    objetivos_aprendizaje: str = ""
    duracion_semanas_fase: int = 0
    numero_proof_points: int = 3
    proof_points: List[ProofPointForm] = Field(default_factory=list)


class ProgramForm(BaseModel):
    nombre_programa: str = ""
    descripcion: str = ""
    categoria: str = ""
    duracion_semanas: int = Field(default=12, ge=1)
    numero_fases: int = Field(default=4, ge=1, le=20)
    fases: List[FaseForm] = Field(default_factory=list)


class ReviewIssue(BaseModel):
    message: str
    step: int


def materialize_phases(form: ProgramForm) -> ProgramForm:
    """Resize ``fases`` to ``numero_fases``, keeping what was already typed."""
    if len(form.fases) != form.numero_fases:
        fases = []
        for i in range(form.numero_fases):
            existing = form.fases[i] if i < len(form.fases) else None
            fase = existing.model_copy() if existing else FaseForm()
            fase.numero_fase = i + 1
            fases.append(fase)
        form.fases = fases
    return form


def materialize_proof_points(form: ProgramForm) -> ProgramForm:
    for fase in form.fases:
        if len(fase.proof_points) != fase.numero_proof_points:
            fase.proof_points = [
                fase.proof_points[i] if i < len(fase.proof_points) else ProofPointForm()
                for i in range(fase.numero_proof_points)
            ]
        for pp in fase.proof_points:
            if pp.nombre_pp:
                pp.slug_pp = proof_point_slug(pp.nombre_pp)
    return form


def apply_step(form: ProgramForm, step: int) -> ProgramForm:
    if step not in WIZARD_STEPS:
        raise ValueError(f"step must be between 1 and {len(WIZARD_STEPS)}")
    if step >= 2:
        materialize_phases(form)
    if step >= 3:
        materialize_proof_points(form)
    return form


def review_issues(form: ProgramForm) -> List[ReviewIssue]:
    issues: List[ReviewIssue] = []
    if not form.nombre_programa.strip():
        issues.append(ReviewIssue(message="El nombre del programa es requerido", step=1))
    for fi, fase in enumerate(form.fases, start=1):
        if not fase.nombre_fase.strip():
            issues.append(ReviewIssue(message=f"La fase {fi} necesita un nombre", step=2))
        for pi, pp in enumerate(fase.proof_points, start=1):
            if not pp.nombre_pp.strip():
                issues.append(ReviewIssue(message=f"El proof point {pi} de la fase {fi} necesita un nombre", step=3))
            if not pp.pregunta_central.strip():
                issues.append(ReviewIssue(message=f"El proof point {pi} de la fase {fi} necesita una pregunta central", step=3))
    return issues


def review_summary(form: ProgramForm) -> Dict[str, Any]:
    total_semanas_fases = sum(f.duracion_semanas_fase or 0 for f in form.fases)
    issues = review_issues(form)
    return {
        "total_proof_points": sum(len(f.proof_points) for f in form.fases),
        "total_horas": sum(pp.duracion_estimada_horas or 0 for f in form.fases for pp in f.proof_points),
        "total_semanas_fases": total_semanas_fases,
        "excede_duracion": total_semanas_fases > form.duracion_semanas,
        "issues": [i.model_dump() for i in issues],
        "valid": not issues,
    }


# Cohort wizard

class CohortForm(BaseModel):
    nombre: str
    descripcion: Optional[str] = None
    programa_id: str
    programa_version_id: str
    fecha_inicio: date
    fecha_fin_estimada: Optional[date] = None
    modo_acceso: Literal["abierto", "secuencial", "programado"] = "secuencial"
    permitir_saltar_niveles: bool = False
    reintentos_ilimitados: bool = True
    recordatorio_inactividad: bool = True
    dias_inactividad: int = Field(default=7, ge=1, le=30)
    celebracion_completacion: bool = True

    @field_validator("nombre")
    @classmethod
    def _nombre_length(cls, v: str) -> str:
        if len(v.strip()) < 3:
            raise ValueError("El nombre debe tener al menos 3 caracteres")
        return v

    @field_validator("programa_id")
    @classmethod
    def _programa_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Debes seleccionar un programa")
        return v

    @field_validator("programa_version_id")
    @classmethod
    def _version_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Debes seleccionar una versión")
        return v


def estimated_end_date(fecha_inicio: date, duracion_semanas: Optional[Any]) -> date:
    try:
        weeks = int(duracion_semanas) if duracion_semanas else 12
    except (TypeError, ValueError):
        weeks = 12
    return fecha_inicio + timedelta(days=weeks * 7)


def build_cohort_payload(form: CohortForm, *, programa_nombre: str = "", duracion_semanas: Optional[Any] = None) -> Dict[str, Any]:
    fecha_fin = form.fecha_fin_estimada or estimated_end_date(form.fecha_inicio, duracion_semanas)
    return {
        "nombre": form.nombre,
        "descripcion": form.descripcion,
        "programa": {
            "id": form.programa_id,
            "nombre": programa_nombre,
            "version": form.programa_version_id,
        },
        "estado": "proxima",
        "fecha_inicio": form.fecha_inicio.isoformat(),
        "fecha_fin_estimada": fecha_fin.isoformat(),
        "configuracion": {
            "modo_acceso": form.modo_acceso,
            "permitir_saltar_niveles": form.permitir_saltar_niveles,
            "reintentos_ilimitados": form.reintentos_ilimitados,
            "notificaciones": {
                "recordatorio_inactividad": {
                    "activo": form.recordatorio_inactividad,
                    "dias": form.dias_inactividad,
                },
                "recordatorio_deadline": True,
                "celebracion_completacion": form.celebracion_completacion,
            },
        },
    }


# Level configurator

class ComponentForm(BaseModel):
    id: str = Field(default_factory=lambda: f"comp_{uuid.uuid4().hex[:8]}")
    tipo: Literal["leccion", "cuaderno", "simulacion", "herramienta"]
    nombre: str = Field(min_length=1)
    descripcion: str = Field(min_length=1)
    duracion_minutos: int = Field(ge=5, le=180)
    es_evaluable: bool = False
    contenido_listo: bool = False


class CompletionCriterionForm(BaseModel):
    tipo: Literal["simple", "custom"] = "simple"
    condiciones: Optional[List[str]] = None


class LevelForm(BaseModel):
    id: str = Field(default_factory=lambda: f"nivel_{uuid.uuid4().hex[:8]}")
    numero: int = 1
    nombre: str = Field(min_length=1)
    objetivo_especifico: str = Field(min_length=1)
    componentes: List[ComponentForm] = Field(min_length=1)
    criterio_completacion: CompletionCriterionForm = Field(default_factory=CompletionCriterionForm)


def number_levels(niveles: List[LevelForm]) -> List[Dict[str, Any]]:
    return [{**n.model_dump(), "numero": i} for i, n in enumerate(niveles, start=1)]


def levels_summary(niveles: List[LevelForm]) -> Dict[str, int]:
    componentes = [c for n in niveles for c in n.componentes]
    return {
        "total_componentes": len(componentes),
        "duracion_total_minutos": sum(c.duracion_minutos for c in componentes),
        "componentes_evaluables": sum(1 for c in componentes if c.es_evaluable),
    }


# Phase documentation

class ConceptoClave(BaseModel):
    id: str
    nombre: str = Field(min_length=1)
    definicion: str = Field(min_length=1)
    ejemplo: str = Field(min_length=1)
    terminos_relacionados: List[str] = Field(default_factory=list)


class CasoEstudio(BaseModel):
    id: str
    titulo: str = Field(min_length=1)
    tipo: Literal["exito", "fracaso", "comparacion"]
    descripcion: str = Field(min_length=1)
    fuente: str = ""
    conceptos_ilustrados: List[str] = Field(default_factory=list)


class ErrorComun(BaseModel):
    id: str
    titulo: str = Field(min_length=1)
    explicacion: str = Field(min_length=1)
    como_evitar: str = Field(min_length=1)


class RecursoReferencia(BaseModel):
    id: str
    titulo: str = Field(min_length=1)
    tipo: Literal["paper", "libro", "video", "herramienta", "podcast", "otro"]
    url: HttpUrl
    notas: str = ""


class CriterioEvaluacion(BaseModel):
    id: str
    nombre: str = Field(min_length=1)
    descriptor: str = Field(min_length=1)
    nivel_importancia: Literal["critico", "importante", "deseable"]


class FaseDocumentationDraft(BaseModel):
    """Work in progress; any subset of the sections may be filled."""

    fase_id: str
    contexto: str = ""
    conceptos_clave: List[ConceptoClave] = Field(default_factory=list)
    casos_estudio: List[CasoEstudio] = Field(default_factory=list)
    errores_comunes: List[ErrorComun] = Field(default_factory=list)
    recursos_referencia: List[RecursoReferencia] = Field(default_factory=list)
    criterios_evaluacion: List[CriterioEvaluacion] = Field(default_factory=list)
    completitud: int = 0


class FaseDocumentation(FaseDocumentationDraft):
    contexto: str = Field(min_length=200)
    conceptos_clave: List[ConceptoClave] = Field(min_length=3)
    casos_estudio: List[CasoEstudio] = Field(min_length=2)
    errores_comunes: List[ErrorComun] = Field(min_length=2)
    criterios_evaluacion: List[CriterioEvaluacion] = Field(min_length=3)


# (section key, field, minimum count for "complete")
_DOC_SECTIONS = (
    ("contexto", "contexto", 200),
    ("conceptos", "conceptos_clave", 3),
    ("casos", "casos_estudio", 2),
    ("errores", "errores_comunes", 2),
    ("recursos", "recursos_referencia", 1),
    ("criterios", "criterios_evaluacion", 3),
)


def documentation_completeness(doc: FaseDocumentationDraft) -> int:
    score = sum(1 for _, attr, minimum in _DOC_SECTIONS if len(getattr(doc, attr)) >= minimum)
    return round(score / len(_DOC_SECTIONS) * 100)


def section_status(doc: FaseDocumentationDraft) -> Dict[str, str]:
    statuses = {}
    for key, attr, minimum in _DOC_SECTIONS:
        size = len(getattr(doc, attr))
        if size >= minimum:
            statuses[key] = "complete"
        elif size > 0 and key != "recursos":
            statuses[key] = "partial"
        else:
            statuses[key] = "empty"
    return statuses
