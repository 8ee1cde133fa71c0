from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Literal, Optional

from ..db import get_db
from ..notifications import (
	add_notification,
	clear_notifications,
	list_notifications,
	mark_all_as_read,
	mark_as_read,
	remove_notification,
	show_toast,
	unread_count,
)
from ..schemas import NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationIn(BaseModel):
	titulo: str
	descripcion: str
	type: Literal["alerta", "actividad", "mensaje", "sistema"] = "sistema"
	link: Optional[str] = None


class ToastIn(BaseModel):
	level: Literal["success", "error", "info", "warning"]
	message: str
	link: Optional[str] = None


@router.get("")
def get_notifications(unread_only: bool = False, limit: int = 50, db: Session = Depends(get_db)):
	rows = list_notifications(db, unread_only=unread_only, limit=max(1, min(limit, 200)))
	return {
		"notifications": [NotificationOut.model_validate(r).model_dump(mode="json") for r in rows],
		"unread_count": unread_count(db),
	}


@router.post("", status_code=201)
def create_notification(req: NotificationIn, db: Session = Depends(get_db)):
	row = add_notification(db, titulo=req.titulo, descripcion=req.descripcion, type=req.type, link=req.link)
	return NotificationOut.model_validate(row).model_dump(mode="json")


@router.post("/toast", status_code=201)
def create_toast(req: ToastIn, db: Session = Depends(get_db)):
	row = show_toast(db, req.level, req.message, link=req.link)
	return NotificationOut.model_validate(row).model_dump(mode="json")


@router.post("/read-all")
def read_all(db: Session = Depends(get_db)):
	return {"updated": mark_all_as_read(db)}


@router.post("/{notification_id}/read")
def read_one(notification_id: str, db: Session = Depends(get_db)):
	if not mark_as_read(db, notification_id):
		raise HTTPException(status_code=404, detail="Notification not found")
	return {"ok": True}


@router.delete("/{notification_id}", status_code=204)
def delete_one(notification_id: str, db: Session = Depends(get_db)):
	if not remove_notification(db, notification_id):
		raise HTTPException(status_code=404, detail="Notification not found")
	return Response(status_code=204)


@router.delete("", status_code=204)
def delete_all(db: Session = Depends(get_db)):
	clear_notifications(db)
	return Response(status_code=204)
