from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# External backend (programs, cohorts, exercises). "/api/v1" is appended unless already present.
	api_url: str = Field(default="http://localhost:3000", validation_alias="INSTRUCTOR_API_URL")
	# Fallback bearer token when the incoming request carries no Authorization header
	api_token: str | None = Field(default=None, validation_alias="INSTRUCTOR_API_TOKEN")
	api_timeout_seconds: float = Field(default=30.0, validation_alias="INSTRUCTOR_API_TIMEOUT")

	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# "ai_studio" (Generative Language API) or "vertex" (Vertex AI Express)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Used when the Gemini call fails; disabled without a key
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Instructor Studio", validation_alias="OPENROUTER_TITLE")

	# Exercises left in "generando" longer than this can be reset by the instructor
	generation_stuck_minutes: int = Field(default=10, validation_alias="GENERATION_STUCK_MINUTES")

	# Local drafts, lesson progress and notifications older than this are purged
	retention_days: int = Field(default=7, validation_alias="RETENTION_DAYS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def api_base_url(self) -> str:
		base = self.api_url.rstrip("/")
		return base if base.endswith("/api/v1") else f"{base}/api/v1"

settings = Settings()
