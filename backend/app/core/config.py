# app/core/config.py
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv


def str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def merge_unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in items:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


class Settings:
    def __init__(self) -> None:
        # Only load .env outside prod. In prod, env vars come from the service config.
        self.ENV = os.getenv("ENV", "dev").strip().lower()  # dev | test | prod
        if self.ENV != "prod":
            load_dotenv()

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

        # ----------------------------
        # Database
        # ----------------------------
        # DATABASE_URL wins when set; otherwise the URL is assembled from DB_* parts.
        self.DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
        self.DB_HOST = os.getenv("DB_HOST", "localhost")
        self.DB_PORT = os.getenv("DB_PORT", "5432")
        self.DB_NAME = os.getenv("DB_NAME", "intellectify")
        self.DB_APP_USER = os.getenv("DB_APP_USER", "")
        self.DB_APP_PASSWORD = os.getenv("DB_APP_PASSWORD", "")
        self.DB_MIGRATOR_USER = os.getenv("DB_MIGRATOR_USER", "")
        self.DB_MIGRATOR_PASSWORD = os.getenv("DB_MIGRATOR_PASSWORD", "")
        self.DB_SSLMODE = os.getenv("DB_SSLMODE", "prefer").strip().lower()

        # ----------------------------
        # CORS
        # ----------------------------
        dev_defaults = [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]

        cors_from_env = parse_csv(os.getenv("CORS_ORIGINS"))
        if self.ENV == "prod":
            self.CORS_ORIGINS = merge_unique(cors_from_env)
        else:
            self.CORS_ORIGINS = merge_unique(cors_from_env + dev_defaults)

        # ----------------------------
        # Auth / JWT
        # ----------------------------
        self.JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "")
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
        self.REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

        # ----------------------------
        # OAuth providers
        # ----------------------------
        if self.ENV == "prod":
            self.FRONTEND_URL = os.getenv("FRONTEND_URL", "").strip().rstrip("/")
            self.BACKEND_URL = os.getenv("BACKEND_URL", "").strip().rstrip("/")
        else:
            self.FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").strip().rstrip("/")
            self.BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:3000").strip().rstrip("/")

        self.GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
        self.GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
        self.GOOGLE_REDIRECT_URI = os.getenv(
            "GOOGLE_REDIRECT_URI", f"{self.BACKEND_URL}/api/auth/google/callback"
        )
        self.GITHUB_CLIENT_ID = os.getenv("GITHUB_CLIENT_ID", "")
        self.GITHUB_CLIENT_SECRET = os.getenv("GITHUB_CLIENT_SECRET", "")
        self.GITHUB_REDIRECT_URI = os.getenv(
            "GITHUB_REDIRECT_URI", f"{self.BACKEND_URL}/api/auth/github/callback"
        )

        self.OAUTH_HTTP_TIMEOUT_SECONDS = float(os.getenv("OAUTH_HTTP_TIMEOUT_SECONDS", "10"))
        self.GOOGLE_CERTS_CACHE_SECONDS = int(os.getenv("GOOGLE_CERTS_CACHE_SECONDS", "3600"))
        self.GOOGLE_CERTS_REFETCH_COOLDOWN_SECONDS = int(
            os.getenv("GOOGLE_CERTS_REFETCH_COOLDOWN_SECONDS", "60")
        )

        # Final: fail fast in prod
        self._validate_prod()

    def _validate_prod(self) -> None:
        if not self.is_prod:
            return

        missing: list[str] = []

        if not self.JWT_ACCESS_SECRET:
            missing.append("JWT_ACCESS_SECRET")
        if not self.JWT_REFRESH_SECRET:
            missing.append("JWT_REFRESH_SECRET")
        if not self.DATABASE_URL and not (self.DB_HOST and self.DB_NAME and self.DB_APP_USER):
            missing.append("DATABASE_URL")
        if not self.FRONTEND_URL:
            missing.append("FRONTEND_URL")
        if not self.BACKEND_URL:
            missing.append("BACKEND_URL")
        if not self.CORS_ORIGINS:
            missing.append("CORS_ORIGINS")

        if self.JWT_ACCESS_SECRET and self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ in prod")

        cors_joined = ",".join(self.CORS_ORIGINS)
        if "localhost" in cors_joined or "127.0.0.1" in cors_joined:
            raise RuntimeError("CORS_ORIGINS contains localhost/dev origins in prod")

        if self.FRONTEND_URL and not self.FRONTEND_URL.startswith("https://"):
            raise RuntimeError("FRONTEND_URL should be https://... in prod")

        if missing:
            raise RuntimeError(f"Missing required prod env vars: {', '.join(missing)}")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def is_dev(self) -> bool:
        return self.ENV == "dev"

    def _build_database_url(self, user: str, password: str) -> str:
        encoded_password = quote_plus(password)
        return (
            f"postgresql+psycopg2://{user}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?sslmode={self.DB_SSLMODE}"
        )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return self._build_database_url(self.DB_APP_USER, self.DB_APP_PASSWORD)

    @property
    def migrations_database_url(self) -> str:
        if self.DB_MIGRATOR_USER and self.DB_MIGRATOR_PASSWORD:
            return self._build_database_url(self.DB_MIGRATOR_USER, self.DB_MIGRATOR_PASSWORD)
        return self.database_url


settings = Settings()


def require_jwt_secrets() -> None:
    if not settings.JWT_ACCESS_SECRET or not settings.JWT_REFRESH_SECRET:
        raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be set")
