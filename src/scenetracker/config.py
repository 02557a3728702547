from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Provider API keys ---
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # --- Default provider & model tier ---
    default_provider: str = "openai"  # openai | anthropic
    default_model: str | None = None

    # Extraction wants near-deterministic answers; the bootstrap call a bit more latitude.
    default_strong_temperature: float = 0.5
    default_fast_temperature: float = 0.3

    # --- Judgment calls ---
    judgment_max_attempts: int = 2
    judgment_max_tokens: int = 2048

    # --- Extraction ---
    default_message_window: int = 2
    prompts_dir: str = str(_PACKAGE_DIR / "prompts" / "templates")

    # --- Database ---
    database_url: str = f"sqlite+aiosqlite:///{_PROJECT_ROOT / 'scenetracker.db'}"

    log_level: str = "INFO"


settings = Settings()
