from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    # API Settings
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CLI Settings
    COSTA_BIN_NAME: str = "costa"
    COSTA_BUNDLE_ROOT: Optional[Path] = None
    CLI_TIMEOUT_SECONDS: float = 15.0

    # Usage stream
    USAGE_POLL_INTERVAL_SECONDS: float = 3.0
    USAGE_RECONNECT_DELAY_SECONDS: float = 5.0

    # Login flow
    LOGIN_POLL_INTERVAL_SECONDS: float = 3.0
    LOGIN_DEFAULT_TIMEOUT_SECONDS: int = 600
    OPEN_BROWSER: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def bundle_root(self) -> Path:
        return self.COSTA_BUNDLE_ROOT or PROJECT_ROOT

settings = Settings()
