import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "Household Budget")
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
    data_dir: str = os.getenv("DATA_DIR", "./data")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./data/budget.db")
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-only-jwt-secret-change-me")
    jwt_expires_in_days: int = int(os.getenv("JWT_EXPIRES_IN_DAYS", "7"))
    encryption_secret: str | None = os.getenv("PLAID_ENCRYPTION_SECRET") or None
    plaid_client_id: str | None = os.getenv("PLAID_CLIENT_ID") or None
    plaid_secret: str | None = os.getenv("PLAID_SECRET") or None
    plaid_env: str = os.getenv("PLAID_ENV", "sandbox").strip().lower()
    plaid_products: str = os.getenv("PLAID_PRODUCTS", "transactions")
    plaid_country_codes: str = os.getenv("PLAID_COUNTRY_CODES", "US")
    plaid_redirect_uri: str | None = os.getenv("PLAID_REDIRECT_URI") or None
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))

    @property
    def token_secret(self) -> str:
        return self.encryption_secret or self.jwt_secret


settings = Settings()
