from __future__ import annotations
import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select, update, delete
from sqlalchemy.orm import Session

from .models import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("alerta", "actividad", "mensaje", "sistema")

TOAST_TITLES = {
	"success": "Éxito",
	"error": "Error",
	"info": "Información",
	"warning": "Advertencia",
}


def add_notification(
	db: Session,
	*,
	titulo: str,
	descripcion: str,
	type: str = "sistema",
	link: Optional[str] = None,
	level: Optional[str] = None,
) -> Notification:
	if type not in NOTIFICATION_TYPES:
		raise ValueError(f"notification type must be one of {NOTIFICATION_TYPES}")
	row = Notification(
		id=uuid.uuid4().hex[:12],
		type=type,
		level=level,
		titulo=titulo,
		descripcion=descripcion,
		link=link,
		leida=False,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def show_toast(db: Session, level: str, message: str, *, link: Optional[str] = None) -> Notification:
	"""Record a user-facing toast; errors land in the feed as alerts."""
	if level not in TOAST_TITLES:
		raise ValueError(f"toast level must be one of {tuple(TOAST_TITLES)}")
	if level == "error":
		logger.info("toast error: %s", message)
	return add_notification(
		db,
		titulo=TOAST_TITLES[level],
		descripcion=message,
		type="alerta" if level in ("error", "warning") else "sistema",
		link=link,
		level=level,
	)


def list_notifications(db: Session, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
	stmt = select(Notification)
	if unread_only:
		stmt = stmt.where(Notification.leida.is_(False))
	stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
	return list(db.scalars(stmt))


def unread_count(db: Session) -> int:
	return db.scalar(select(func.count()).select_from(Notification).where(Notification.leida.is_(False))) or 0


def mark_as_read(db: Session, notification_id: str) -> bool:
	res = db.execute(update(Notification).where(Notification.id == notification_id).values(leida=True))
	db.commit()
	return bool(res.rowcount)


def mark_all_as_read(db: Session) -> int:
	res = db.execute(update(Notification).where(Notification.leida.is_(False)).values(leida=True))
	db.commit()
	return res.rowcount or 0


def remove_notification(db: Session, notification_id: str) -> bool:
	res = db.execute(delete(Notification).where(Notification.id == notification_id))
	db.commit()
	return bool(res.rowcount)


def clear_notifications(db: Session) -> int:
	res = db.execute(delete(Notification))
	db.commit()
	return res.rowcount or 0
