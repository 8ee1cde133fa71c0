from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Integer, Text, UniqueConstraint
from .db import Base


class EditorDraft(Base):
	__tablename__ = "editor_drafts"
	__table_args__ = (UniqueConstraint("kind", "target_id", name="uq_editor_draft_target"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	# leccion / cuaderno / simulacion / fase_documentacion
	kind = Column(String(32), nullable=False, index=True)
	# Component id, or phase id for phase documentation
	target_id = Column(String(128), nullable=False, index=True)
	payload_json = Column(Text, nullable=False)
	revision = Column(Integer, default=1, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LessonProgress(Base):
	__tablename__ = "lesson_progress"
	# Single entry per viewer and lesson component
	viewer_id = Column(String(128), primary_key=True)
	component_id = Column(String(128), primary_key=True)
	question_state_json = Column(Text, nullable=True)
	attempts_json = Column(Text, nullable=True)
	current_section_id = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Notification(Base):
	__tablename__ = "notifications"
	id = Column(String(32), primary_key=True)
	# alerta / actividad / mensaje / sistema
	type = Column(String(16), default="sistema", nullable=False)
	# success / error / info / warning; None for plain feed entries
	level = Column(String(16), nullable=True)
	titulo = Column(String(256), nullable=False)
	descripcion = Column(Text, nullable=False)
	link = Column(String(512), nullable=True)
	leida = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
