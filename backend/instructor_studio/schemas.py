from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# Records travel through unchanged; unknown backend keys are kept
class _Record(BaseModel):
	model_config = ConfigDict(extra="allow", populate_by_name=True)


ComponentType = Literal["leccion", "cuaderno", "simulacion", "herramienta"]


class Component(_Record):
	id: str
	tipo: str = "leccion"
	nombre: str = ""
	duracion_minutos: Optional[int] = None
	es_evaluable: bool = False
	contenido_listo: bool = False
	orden: Optional[int] = None


class CompletionCriterion(_Record):
	tipo: Literal["simple", "custom"] = "simple"
	condiciones: Optional[List[str]] = None


class Level(_Record):
	id: str
	numero: int = 1
	nombre: str = ""
	objetivo_especifico: str = ""
	componentes: List[Component] = Field(default_factory=list)
	criterio_completacion: Optional[CompletionCriterion] = None


class ProofPoint(_Record):
	id: str
	nombre: str = ""
	slug: str = ""
	descripcion: str = ""
	pregunta_central: str = ""
	tipo_entregable: str = ""
	numero_niveles: int = 0
	prerequisitos: List[str] = Field(default_factory=list)
	duracion_estimada_horas: float = 0
	orden: Optional[int] = None
	niveles: List[Level] = Field(default_factory=list)

	@property
	def content_ready(self) -> bool:
		return any(c.contenido_listo for n in self.niveles for c in n.componentes)


class Phase(_Record):
	id: str
	numero: int = 0
	nombre: str = ""
	descripcion: str = ""
	objetivos_aprendizaje: str = ""
	duracion_semanas: float = 0
	documentacion_completa: bool = False
	orden: Optional[int] = None
	proof_points: List[ProofPoint] = Field(default_factory=list)


class Program(_Record):
	id: str
	nombre: str = ""
	descripcion: str = ""
	categoria: Optional[str] = None
	duracion_semanas: Optional[float] = None
	fases: List[Phase] = Field(default_factory=list)

	def proof_point_count(self) -> int:
		return sum(len(f.proof_points) for f in self.fases)


ContentStatusValue = Literal["sin_generar", "generando", "generado", "draft", "publicado", "error"]


class ExerciseTemplate(_Record):
	id: str
	nombre: str
	categoria: str
	descripcion: str = ""
	configuracionSchema: Dict[str, Any] = Field(default_factory=dict)
	configuracionDefault: Dict[str, Any] = Field(default_factory=dict)
	icono: Optional[str] = None
	color: Optional[str] = None
	esOficial: bool = False
	activo: bool = True


class ExerciseInstance(_Record):
	id: str
	template: str
	proofPoint: str
	nombre: str
	descripcionBreve: Optional[str] = None
	consideracionesContexto: str = ""
	configuracionPersonalizada: Dict[str, Any] = Field(default_factory=dict)
	orden: int = 0
	duracionEstimadaMinutos: int = 0
	estadoContenido: ContentStatusValue = "sin_generar"
	contenidoActual: Optional[str] = None
	esObligatorio: bool = False
	createdAt: Optional[str] = None
	updatedAt: Optional[str] = None


StudentStatus = Literal["activo", "en_riesgo", "inactivo", "completado"]


class StudentAlert(_Record):
	tipo: str
	mensaje: str
	severidad: Literal["high", "medium", "low"] = "medium"


class Student(_Record):
	id: str
	nombre: str
	email: str = ""
	estado: StudentStatus = "activo"
	ultima_actividad: Optional[str] = None
	progreso_general: float = 0
	componentes_completados: int = 0
	componentes_totales: int = 0
	score_promedio: float = 0
	alertas: List[StudentAlert] = Field(default_factory=list)


class CohortProgramRef(_Record):
	id: str
	nombre: str = ""
	version: str = ""


class Cohort(_Record):
	id: str
	nombre: str
	descripcion: Optional[str] = None
	programa: Optional[CohortProgramRef] = None
	estado: Literal["activa", "proxima", "finalizada", "archivada"] = "proxima"
	fecha_inicio: Optional[str] = None
	fecha_fin_estimada: Optional[str] = None


CommunicationType = Literal["anuncio", "mensaje_individual", "recordatorio_automatico"]


class Communication(_Record):
	id: str
	tipo: CommunicationType
	asunto: str
	contenido: str = ""
	fecha_envio: str
	remitente: str = ""
	destinatarios: int = 0
	abierto_por: int = 0
	respondido_por: Optional[int] = None


class ProgressRecord(_Record):
	"""One student's progress on one exercise instance, from the cohort progress overview."""

	progressId: Optional[str] = None
	estudianteId: Optional[str] = None
	estudianteNombre: Optional[str] = None
	exerciseInstanceId: Any = Field(default=None, validation_alias=AliasChoices("exerciseInstanceId", "exercise_instance"))
	status: Optional[str] = "not_started"
	porcentajeCompletitud: Optional[float] = None
	aiScore: Optional[float] = None
	instructorScore: Optional[float] = None
	finalScore: Optional[float] = None
	submittedAt: Optional[str] = None
	gradedAt: Optional[str] = None
	updatedAt: Optional[str] = None


class NotificationOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: str
	type: str
	level: Optional[str] = None
	titulo: str
	descripcion: str
	link: Optional[str] = None
	leida: bool
	created_at: Any


class GlossaryEntry(_Record):
	termino: str
	definicion: str = ""


class VerificationOption(_Record):
	id: str
	texto: str = ""


class OptionFeedback(_Record):
	optionId: Optional[str] = None
	feedback: str = ""


class QuestionFeedback(_Record):
	correcto: str = ""
	incorrecto: Optional[str] = None
	porOpcion: List[OptionFeedback] = Field(default_factory=list)


class VerificationQuestion(_Record):
	id: str
	# multiple_choice / verdadero_falso / respuesta_corta
	tipo: str = "multiple_choice"
	enunciado: str = ""
	opciones: List[VerificationOption] = Field(default_factory=list)
	respuestaCorrecta: Union[str, List[str], None] = None
	feedback: QuestionFeedback = Field(default_factory=QuestionFeedback)
	seccionId: Optional[str] = None
	criteriosEvaluacion: Any = None
	accionChatSugerida: Optional[str] = None

	def expected_answers(self) -> List[str]:
		if isinstance(self.respuestaCorrecta, list):
			return [str(a) for a in self.respuestaCorrecta]
		return [str(self.respuestaCorrecta)]


class LessonContent(_Record):
	markdown: str = ""
	glosario: List[GlossaryEntry] = Field(default_factory=list)
	preguntasVerificacion: List[VerificationQuestion] = Field(default_factory=list)
