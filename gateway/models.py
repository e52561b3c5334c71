from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class HealthStatus(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    TIMEOUT = "TIMEOUT"


class HealthCheckResult(BaseModel):
    """Outcome of probing one backend. Built once per probe and never changed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service: str
    status: HealthStatus
    url: str
    status_code: Optional[int] = Field(default=None, serialization_alias="statusCode")
    note: Optional[str] = None
    error: Optional[str] = None
    observed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        serialization_alias="observedAt",
    )

    def to_payload(self) -> dict:
        payload = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        payload["status"] = self.status.value
        payload["observedAt"] = utc_timestamp(self.observed_at)
        return payload
