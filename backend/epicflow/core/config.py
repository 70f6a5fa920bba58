import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[2] / ".env")

ROOT = Path(__file__).resolve().parents[3]
SUPPORTED_JWT_ALGORITHMS = ("HS256", "HS512")


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_env: str
    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str
    jwt_access_expire_minutes: int
    permit_token: str
    permit_pdp_url: str
    permit_api_url: str
    permit_tenant: str
    webhook_url: str
    cors_origins: str
    log_level: str

    def __post_init__(self) -> None:
        if self.jwt_algorithm not in SUPPORTED_JWT_ALGORITHMS:
            raise ValueError(
                f"JWT_ALGORITHM must be one of {', '.join(SUPPORTED_JWT_ALGORITHMS)}, got {self.jwt_algorithm!r}"
            )

    def parsed_cors_origins(self) -> list[str]:
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]


def get_settings() -> Settings:
    debugging = bool(os.getenv("DEBUGGING"))
    return Settings(
        app_name=os.getenv("APP_NAME", "epicflow API"),
        app_env=os.getenv("APP_ENV", "dev"),
        database_url=os.getenv("DB_URL", f"sqlite:///{ROOT / 'epicflow.db'}"),
        jwt_secret_key=os.getenv("JWT_SECRET", "change_me_in_env"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_access_expire_minutes=int(os.getenv("JWT_ACCESS_EXPIRE_MINUTES", "60")),
        permit_token=os.getenv("PERMIT_IO_TOKEN", ""),
        permit_pdp_url=os.getenv("PERMIT_IO_PDP_URL", "http://localhost:7766"),
        permit_api_url=os.getenv("PERMIT_IO_API_URL", "https://api.permit.io"),
        permit_tenant=os.getenv("PERMIT_IO_TENANT", "default"),
        webhook_url=os.getenv("WEBHOOK_URL", ""),
        cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000"),
        log_level=os.getenv("LOG_LEVEL", "DEBUG" if debugging else "INFO"),
    )
