from pathlib import Path

from pydantic_settings import BaseSettings

_BACKEND_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Project Chat"
    debug: bool = False

    # Paths
    data_dir: Path = _BACKEND_DIR / "data"
    database_url: str = f"sqlite:///{_BACKEND_DIR / 'projectchat.db'}"

    # LLM
    llm_provider: str = "gemini"  # gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # Relay
    fragment_idle_timeout: float | None = 60.0  # seconds between fragments, None disables
    final_persist_attempts: int = 3
    final_persist_backoff: float = 0.5  # seconds, multiplied by the attempt number

    # Auth
    jwt_secret: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(_BACKEND_DIR / ".env"),
        "env_prefix": "PROJECTCHAT_",
    }

    @property
    def journal_dir(self) -> Path:
        return self.data_dir / "unsaved_replies"


settings = Settings()
