"""
Authentication endpoints.

Login is delegated to the costa CLI: the service opens the returned auth
URL and polls the CLI until the session reports logged in.
"""

from fastapi import APIRouter, Depends

from costa_bridge.api.deps import get_runtime
from costa_bridge.api.schemas import LoginResponse, LoginStateResponse, LogoutResponse
from costa_bridge.bridge.schemas import StatusResult, TokenResult
from costa_bridge.config import settings
from costa_bridge.runtime import CostaRuntime

router = APIRouter()


@router.get("/status", response_model=StatusResult)
async def get_status(runtime: CostaRuntime = Depends(get_runtime)):
    return await runtime.client.status()


@router.post("/login", response_model=LoginResponse)
async def login(runtime: CostaRuntime = Depends(get_runtime)):
    """
    Start a login. The response carries the auth URL in case no browser
    could be opened on this machine.
    """
    result = await runtime.login()
    timeout_seconds = result.timeout_seconds
    if timeout_seconds is None:
        timeout_seconds = settings.LOGIN_DEFAULT_TIMEOUT_SECONDS
    return LoginResponse(
        status=result.status,
        message=result.message,
        auth_url=result.auth_url,
        timeout_seconds=timeout_seconds,
    )


@router.get("/login", response_model=LoginStateResponse)
async def login_state(runtime: CostaRuntime = Depends(get_runtime)):
    return LoginStateResponse(state=runtime.login_state())


@router.post("/logout", response_model=LogoutResponse)
async def logout(runtime: CostaRuntime = Depends(get_runtime)):
    await runtime.logout()
    return LogoutResponse()


@router.get("/token", response_model=TokenResult)
async def get_token(runtime: CostaRuntime = Depends(get_runtime)):
    return await runtime.client.token()
