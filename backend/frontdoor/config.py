from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str = "sqlite:///./frontdoor.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Must match the serving domain exactly or every ceremony fails
    WEBAUTHN_RP_ID: str = "localhost"
    WEBAUTHN_RP_NAME: str = "GitGud AI"
    WEBAUTHN_ORIGIN: str = "http://localhost:3000"
    CHALLENGE_TTL_SECONDS: int = 300

    ALLOWED_ORIGINS: str = "http://localhost:3000"
    JWT_SECRET: str
    TOKEN_TTL_SECONDS: int = 3600
    LANDING_PATH: str = "/founder-journey"
    LOG_LEVEL: str = "INFO"
    ENV: str = "dev"

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

settings = Settings()
