import asyncio
import sys
import os
import httpx
import uvicorn

# Add the project root to sys.path
sys.path.append(os.getcwd())

from costa_bridge.config import settings
from costa_bridge.main import app

BASE_URL = f"http://{settings.HOST}:{settings.PORT}"


async def run_api_test():
    # Wait for server to start
    await asyncio.sleep(2)

    print("\n--- Testing Costa Bridge API ---")

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=30.0) as client:
        # 1. Health Check
        print("1. Testing Health Check...")
        res = await client.get("/health")
        print(f"Status Code: {res.status_code}")
        print(f"Response: {res.json()}")

        # 2. CLI smoke test
        print("\n2. Testing /cli/test...")
        res = await client.get("/api/v1/cli/test")
        if res.status_code == 200:
            print(f"✅ {res.json()['message']}")
        else:
            print(f"❌ Failed: {res.status_code} - {res.text}")

        # 3. Latest usage
        print("\n3. Testing /usage...")
        res = await client.get("/api/v1/usage")
        if res.status_code == 200:
            print(f"✅ Usage: {res.json()}")
        else:
            print(f"ℹ️ No usage yet: {res.status_code} - {res.text}")


async def main():
    config = uvicorn.Config(app, host=settings.HOST, port=settings.PORT, log_level="error")
    server = uvicorn.Server(config)

    server_task = asyncio.create_task(server.serve())
    test_task = asyncio.create_task(run_api_test())

    await test_task
    # Force exit or cancel
    server.should_exit = True
    await server_task

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
