from enum import Enum
from typing import Optional

from pydantic import BaseModel

from costa_bridge.bridge.schemas import PointsValue, StatusResult

# Reported until the CLI exposes the context length
CONTEXT_LENGTH_PLACEHOLDER = "-"


class StreamState(str, Enum):
    """Lifecycle of a usage stream."""
    IDLE = "idle"
    CONNECTING = "connecting"
    POLLING = "polling"
    RECONNECT_SCHEDULED = "reconnect_scheduled"


class UsageSnapshot(BaseModel):
    """Point-in-time usage reading derived from one successful status check."""

    points: Optional[PointsValue] = None
    total_points: Optional[PointsValue] = None
    context_length: Optional[PointsValue] = None

    @classmethod
    def from_status(cls, status: StatusResult) -> "UsageSnapshot":
        return cls(
            points=status.points if status.points is not None else 0,
            total_points=status.total_points if status.total_points is not None else 0,
            context_length=CONTEXT_LENGTH_PLACEHOLDER,
        )

    def has_data(self) -> bool:
        return any(value is not None for value in (self.points, self.total_points, self.context_length))
