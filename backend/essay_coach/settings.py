from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Model used for interim feedback and skeleton suggestions
	gemini_model: str = Field(default="gemini-3-flash-preview", validation_alias="GEMINI_MODEL")
	# Final essay scoring runs on the stronger model
	gemini_model_evaluation: str = Field(default="gemini-3-pro-preview", validation_alias="GEMINI_MODEL_EVALUATION")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	# Unset means the HTTP client waits indefinitely
	gemini_timeout_seconds: float | None = Field(default=None, validation_alias="GEMINI_TIMEOUT_SECONDS")

	# Idle coaching sessions are evicted after this many seconds (0 disables eviction)
	session_idle_seconds: int = Field(default=24 * 60 * 60, validation_alias="SESSION_IDLE_SECONDS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
