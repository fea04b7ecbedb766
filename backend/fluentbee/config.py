from pathlib import Path
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{BASE_DIR / 'fluentbee.db'}"
    openai_key: str = ""
    gemini_key: str = ""
    anthropic_api_key: str = ""
    log_dir: Path = BASE_DIR / "data" / "logs"

    # External generator call bound; kept well under the outer request deadline
    generator_timeout_s: float = 25.0
    request_timeout_s: float = 60.0

    daily_request_limit: int = 200
    rate_limit_max_keys: int = 1000

    static_fallback_enabled: bool = True

    model_config = {"env_file": [BASE_DIR / ".env", BASE_DIR.parent / ".env"], "extra": "ignore"}


settings = Settings()
