import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .backend_client import ApiClientError
from .cleanup import purge_stale_rows
from .db import Base, SessionLocal, engine, ensure_schema
from .exercises import InvalidTransition
from .notifications import show_toast
from .settings import settings
from .routers import health, notifications
from .routers import programs
from .routers import roadmap
from .routers import exercises
from .routers import cohorts
from .routers import lessons
from .routers import editors

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("instructor_studio")

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60

app = FastAPI(title="Instructor Studio API")
app.include_router(health.router)
app.include_router(notifications.router)
app.include_router(programs.router)
app.include_router(roadmap.router)
app.include_router(exercises.router)
app.include_router(cohorts.router)
app.include_router(lessons.router)
app.include_router(editors.router)


@app.exception_handler(ApiClientError)
async def api_client_error_handler(request: Request, exc: ApiClientError):
	# Every backend failure also surfaces in the notification feed
	db = SessionLocal()
	try:
		show_toast(db, "error", exc.message)
	finally:
		db.close()
	return JSONResponse(
		status_code=exc.status_code,
		content={"message": exc.message, "error": exc.error, "statusCode": exc.status_code},
	)


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
	return JSONResponse(status_code=409, content={"detail": str(exc), "estado": exc.current})


def _run_cleanup() -> None:
	db = SessionLocal()
	try:
		purge_stale_rows(db)
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
		try:
			_run_cleanup()
		except Exception:
			logger.exception("Periodic cleanup failed")


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	try:
		_run_cleanup()
	except Exception:
		logger.exception("Startup cleanup failed")
	asyncio.create_task(_cleanup_watcher())
	logger.info("Instructor Studio ready; backend at %s", settings.api_base_url)
