from __future__ import annotations
import logging
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import EditorDraft, LessonProgress, Notification
from .settings import settings

logger = logging.getLogger(__name__)


def purge_stale_rows(db: Session, *, days: int | None = None) -> int:
	threshold = datetime.utcnow() - timedelta(days=days if days is not None else settings.retention_days)
	removed = 0

	for model in (EditorDraft, LessonProgress):
		res = db.execute(delete(model).where(model.updated_at < threshold))
		removed += res.rowcount or 0

	# Unread notifications stay in the feed until the instructor sees them
	res = db.execute(delete(Notification).where(Notification.updated_at < threshold, Notification.leida.is_(True)))
	removed += res.rowcount or 0

	db.commit()
	if removed:
		logger.info("Purged %d local rows older than %s", removed, threshold.isoformat())
	return removed
