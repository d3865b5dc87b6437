from pathlib import Path

from pydantic_settings import BaseSettings


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    app_name: str = "Cursor Agent Bot"
    debug: bool = False

    # Telegram
    bot_token: str = ""
    bot_username: str = ""  # resolved via getMe at startup when empty
    mention_only: bool = False

    # LLM
    gemini_api_key: str = ""
    llm_model: str = "gemini-2.0-flash"
    max_steps: int = 20
    history_limit: int = 50
    custom_prompt: str = ""

    # Voice transcription (falls back to gemini_api_key)
    transcription_api_key: str = ""
    transcription_model: str = "gemini-2.5-flash"

    # Cursor background agents API
    cursor_api_key: str = ""
    cursor_base_url: str = "https://api.cursor.com"
    cursor_timeout: float = 30.0
    cursor_repos_ttl: float = 60.0
    cursor_models_ttl: float = 2 * 60 * 60.0

    # Access control (comma-separated, empty = allow all)
    allowed_repos: str = ""
    allowed_users: str = ""

    # Storage
    db_path: Path = Path("bot.db")
    image_cache_ttl: float = 180.0
    sweep_interval: float = 60.0
    monitor_interval: float = 60.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def allowed_repo_list(self) -> list[str]:
        return _split_csv(self.allowed_repos)

    @property
    def allowed_user_list(self) -> list[str]:
        return _split_csv(self.allowed_users)

    @property
    def stt_api_key(self) -> str:
        return self.transcription_api_key or self.gemini_api_key

    def missing_credentials(self) -> list[str]:
        """Names of required credentials that are not configured."""
        required = {
            "BOT_TOKEN": self.bot_token,
            "GEMINI_API_KEY": self.gemini_api_key,
            "CURSOR_API_KEY": self.cursor_api_key,
        }
        return [name for name, value in required.items() if not value]


settings = Settings()
