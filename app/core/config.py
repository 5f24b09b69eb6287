from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
    return bool(v)


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'gestion_user'
    POSTGRES_PASSWORD: str = 'gestion_pass'
    POSTGRES_DB: str = 'gestion_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # URL completa opcional (p.ej. sqlite:// en tests); tiene prioridad sobre POSTGRES_*
    DATABASE_URL: Optional[str] = None

    # JWT settings (los tokens se emiten en el servicio de identidad externo)
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Datos fiscales de la empresa emisora
    COMPANY_NAME: str = 'Mi Empresa'
    COMPANY_TAX_ID: str = '20000000001'
    COMPANY_TAX_CONDITION: str = 'responsable_inscripto'
    POINT_OF_SALE: int = 1

    # Servicio de autorización fiscal
    TAX_AUTHORITY_MODE: str = 'sandbox'  # sandbox | http
    TAX_AUTHORITY_URL: str = 'http://tax-authority:8080'
    TAX_AUTHORITY_API_KEY: str = ''
    TAX_AUTHORITY_TIMEOUT_SECONDS: float = 15.0
    AUTHORIZATION_VALIDITY_DAYS: int = 10

    # Reglas de negocio
    DEFAULT_VAT_RATE: float = 21.0
    MIN_REASON_LENGTH: int = 10
    SEQUENCE_RETRY_ATTEMPTS: int = 3

    # Umbrales de uso del límite de crédito (porcentaje)
    CREDIT_ATTENTION_PERCENT: float = 60.0
    CREDIT_WARNING_PERCENT: float = 80.0
    CREDIT_LIMIT_PERCENT: float = 100.0

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SQL_ECHO: bool = False

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    @field_validator("SQL_ECHO", mode="before")
    @classmethod
    def parse_sql_echo(cls, v):
        return _parse_bool(v)

    @field_validator("TAX_AUTHORITY_MODE")
    @classmethod
    def validate_tax_authority_mode(cls, v):
        v = v.lower().strip()
        if v not in ("sandbox", "http"):
            raise ValueError("TAX_AUTHORITY_MODE debe ser 'sandbox' o 'http'")
        return v

settings = Settings()
