from fastapi import APIRouter, Depends

from costa_bridge.api.deps import get_runtime
from costa_bridge.api.schemas import CliTestResponse, CliVersionResponse
from costa_bridge.runtime import CostaRuntime

router = APIRouter()


@router.get("/test", response_model=CliTestResponse)
async def test_cli(runtime: CostaRuntime = Depends(get_runtime)):
    """Smoke-test the CLI with a status call."""
    message = await runtime.test_cli()
    return CliTestResponse(message=f"Costa CLI: {message}")


@router.get("/version", response_model=CliVersionResponse)
async def cli_version(runtime: CostaRuntime = Depends(get_runtime)):
    return CliVersionResponse(version=await runtime.client.version())
