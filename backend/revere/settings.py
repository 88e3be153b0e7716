"""Settings for the Revere messaging core."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	service_name: str = _env_field("revere-messaging", "SERVICE_NAME")
	git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
	# "memory" keeps everything in-process, "redis" uses the shared proxy client
	messaging_backend: str = _env_field("memory", "MESSAGING_BACKEND")
	messaging_key_prefix: str = _env_field("revere", "MESSAGING_KEY_PREFIX")
	messaging_op_timeout_seconds: float = _env_field(10.0, "MESSAGING_OP_TIMEOUT_SECONDS")

	unread_badge_cap: int = _env_field(99, "UNREAD_BADGE_CAP")
	default_self_display_name: str = "me"
	default_peer_display_name: str = "user"
	inbox_empty_preview: str = "Say hi 👋"

	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		extra="ignore",
	)

	@field_validator("messaging_backend", mode="before")
	def _normalise_backend(cls, value):  # type: ignore[override]
		text = str(value or "memory").strip().lower()
		if text not in ("memory", "redis"):
			raise ValueError(f"unsupported messaging backend: {value!r}")
		return text

	@field_validator("messaging_op_timeout_seconds")
	def _positive_timeout(cls, value):  # type: ignore[override]
		if value <= 0:
			raise ValueError("messaging_op_timeout_seconds must be positive")
		return value


settings = Settings()
