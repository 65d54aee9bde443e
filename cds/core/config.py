from typing import Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App Config
    PROJECT_NAME: str = "CDS Engine"
    PROJECT_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "production", "testing"] = "development"
    DEBUG: bool = False
    API_V1_STR: str = "/v1"

    # Database (Postgres) - audit trail and alert acknowledgments
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "changeme"
    POSTGRES_DB: str = "cds"
    POSTGRES_PORT: int = 5432

    @property
    def DATABASE_URL(self) -> str:
        # Async driver 'postgresql+asyncpg'
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis (Session cache + usage metering)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    # Used to derive the Fernet key for PHI at rest (sessions, audit details)
    SESSION_SECRET: str = "cds-dev-secret-change-me-in-prod"
    SESSION_TTL_SECONDS: int = 3600
    USAGE_DETAIL_TTL_SECONDS: int = 86400 * 7
    USAGE_AGGREGATE_TTL_SECONDS: int = 86400 * 90

    # Pipeline
    CDS_MODEL_VERSION: str = "v2.1.0"
    CDS_MAX_RECOMMENDATIONS: int = 15
    CDS_ALERT_RISK_THRESHOLD: float = 0.7
    CDS_DRUG_INTERACTION_ALERTS: bool = True
    CDS_STRICT_SIDE_EFFECTS: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

settings = Settings()


class PipelineConfig(BaseModel):
    """
    Everything the CDS pipeline needs to be reproducible.
    Passed into the engine explicitly; versions end up in the explainability report.
    """
    model_version: str = "v2.1.0"
    catalog_version: str = ""
    max_recommendations: int = Field(15, ge=1)
    alert_risk_threshold: float = Field(0.7, ge=0.0, le=1.0)
    drug_interaction_alerts: bool = True
    strict_side_effects: bool = False

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    @classmethod
    def from_settings(cls, s: Settings) -> "PipelineConfig":
        # Imported here so config stays importable without the catalog tables
        from cds.services.catalog import CATALOG_VERSION

        return cls(
            model_version=s.CDS_MODEL_VERSION,
            catalog_version=CATALOG_VERSION,
            max_recommendations=s.CDS_MAX_RECOMMENDATIONS,
            alert_risk_threshold=s.CDS_ALERT_RISK_THRESHOLD,
            drug_interaction_alerts=s.CDS_DRUG_INTERACTION_ALERTS,
            strict_side_effects=s.CDS_STRICT_SIDE_EFFECTS,
        )
