"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticketflow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/ticketflow",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    sla_report_interval: int = Field(
        default=300,
        description="Seconds between scheduled breach snapshots (0 disables)",
        ge=0
    )
    aggregation_max_workers: int = Field(
        default=8,
        description="Upper bound of the breach aggregator worker pool",
        ge=1,
        le=64
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class StatusCategory(str, Enum):
    """Who owns a status: the platform (locked) or agents (editable)."""
    SYSTEM = "system"
    AGENT = "agent"


class SlaBehavior(str, Enum):
    """What the SLA clock does while a ticket sits in a status."""
    RUN = "run"
    PAUSE = "pause"
    STOP = "stop"


class GraphKind(str, Enum):
    """Workflow graph flavours."""
    TEMPLATE = "template"
    INSTANCE = "instance"


class ActionKind(str, Enum):
    """Typed trail event kinds written by the ticket side."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    AGENT_REPLIED = "agent_replied"
    ESCALATED = "escalated"
    ASSIGNED = "assigned"
    COMMENTED = "commented"
    NOTIFICATION = "notification"
    REMINDER = "reminder"


class SupportTier(str, Enum):
    """Support tiers used for escalation attribution."""
    L1 = "l1"
    L2 = "l2"


class SLAState(str, Enum):
    """SLA status states."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"
    EXEMPT = "exempt"


class SLAType(str, Enum):
    """Which SLA clock an escalation rule watches."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


class TriggerType(str, Enum):
    """How an escalation rule's trigger_value is read."""
    PERCENTAGE = "percentage"
    OVERDUE_MINUTES = "overdue_minutes"


class Priority(str):
    """Ticket priority labels known to the default tier table."""
    CRITICAL = "critical"
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    OTHER = "other"


# ========== Report buckets ==========

REPORT_PRIORITY_BUCKETS = ["Critical", "High", "Medium", "Low"]
