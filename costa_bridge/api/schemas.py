from pydantic import BaseModel
from typing import Optional

from costa_bridge.auth import LoginPollState
from costa_bridge.bridge.schemas import LoginStatus
from costa_bridge.usage import UsageSnapshot


class LoginResponse(BaseModel):
    status: LoginStatus
    message: Optional[str] = None
    auth_url: str
    timeout_seconds: int


class LoginStateResponse(BaseModel):
    state: Optional[LoginPollState] = None


class LogoutResponse(BaseModel):
    status: str = "logged_out"


class RefreshResponse(BaseModel):
    logged_in: bool
    usage: Optional[UsageSnapshot] = None


class StreamStatusResponse(BaseModel):
    state: str
    polling: bool
    reconnect_pending: bool


class CliTestResponse(BaseModel):
    message: str


class CliVersionResponse(BaseModel):
    version: str
