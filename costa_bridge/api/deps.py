from fastapi import Request

from costa_bridge.runtime import CostaRuntime


def get_runtime(request: Request) -> CostaRuntime:
    """
    Dependency returning the runtime created by the app lifespan.

    Use as a FastAPI dependency:
        @router.get("/status")
        async def status(runtime: CostaRuntime = Depends(get_runtime)):
            return await runtime.client.status()
    """
    return request.app.state.runtime
