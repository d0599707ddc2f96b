"""Common Pydantic models shared across services."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Health status enum."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class ServiceInfo(BaseModel):
    """Liveness payload returned by /health."""

    model_config = ConfigDict(use_enum_values=True)

    service_name: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    status: HealthStatus = Field(..., description="Service health status")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ReadinessInfo(BaseModel):
    """Readiness payload returned by /ready."""

    model_config = ConfigDict(use_enum_values=True)

    status: HealthStatus = Field(..., description="Overall readiness")
    dependencies: Dict[str, HealthStatus] = Field(
        default_factory=dict, description="Dependency health status"
    )
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
