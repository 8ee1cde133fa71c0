from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./instructor_studio.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added after the first release: table -> {column: DDL type}
_ADDED_COLUMNS = {
	"editor_drafts": {"revision": "INTEGER DEFAULT 1 NOT NULL"},
	"notifications": {"link": "VARCHAR(512)", "level": "VARCHAR(16)"},
}


def ensure_schema() -> None:
	"""Add missing columns to existing SQLite tables; create_all never alters."""
	try:
		inspector = inspect(engine)
		tables = set(inspector.get_table_names())
	except Exception:
		return
	for table, columns in _ADDED_COLUMNS.items():
		if table not in tables:
			continue
		present = {c["name"] for c in inspector.get_columns(table)}
		missing = [(name, ddl) for name, ddl in columns.items() if name not in present]
		if not missing:
			continue
		with engine.begin() as conn:
			for name, ddl in missing:
				conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
