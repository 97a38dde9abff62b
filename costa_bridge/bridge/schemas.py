from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

# Numeric readings may arrive as sentinel text such as "∞"
PointsValue = Union[int, float, str]


class CliModel(BaseModel):
    """Base for records parsed from costa CLI output."""

    model_config = ConfigDict(extra="ignore")


class BridgeResult(BaseModel):
    stdout: str
    stderr: str


class LoginStatus(str, Enum):
    WAITING_FOR_USER = "waiting_for_user"
    READY = "ready"
    ERROR = "error"


class LoginResult(CliModel):
    status: LoginStatus
    message: Optional[str] = None
    auth_url: Optional[str] = None
    redirect_uri: Optional[str] = None
    timeout_seconds: Optional[int] = None


class StatusResult(CliModel):
    logged_in: bool
    points: Optional[PointsValue] = None
    total_points: Optional[PointsValue] = None


class TokenResult(CliModel):
    access_token: Optional[str] = None
    expires_at: Optional[int] = None  # epoch seconds
    token_type: Optional[str] = None


class BridgeErrorResponse(BaseModel):
    message: str
    code: str
