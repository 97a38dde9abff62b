import asyncio
import sys
import os

# Add the project root to sys.path
sys.path.append(os.getcwd())

from costa_bridge.bridge import BridgeClient, BridgeError
from costa_bridge.usage import UsageStream


async def run_client_test():
    print("\n--- Testing Bridge Client ---")
    client = BridgeClient()
    print(f"Binary: {client.resolve_binary().path}")

    try:
        print("1. Testing '--version'...")
        version = await client.version()
        print(f"✅ Result: {version}")

        print("\n2. Testing 'status'...")
        status = await client.status()
        print(f"✅ Result: logged_in={status.logged_in} points={status.points}/{status.total_points}")

    except BridgeError as e:
        print(f"❌ ERROR [{e.code}]: {e}")
        return

    if not status.logged_in:
        print("\nNot logged in, skipping usage stream test")
        return

    print("\n3. Streaming usage for 10 seconds...")
    stream = UsageStream(client)
    stream.on_usage(lambda snapshot: print(f"✅ Usage: {snapshot.model_dump()}"))
    await stream.connect()
    await asyncio.sleep(10)
    stream.disconnect()
    print(f"Stream state after disconnect: {stream.state.value}")


if __name__ == "__main__":
    try:
        asyncio.run(run_client_test())
    except KeyboardInterrupt:
        pass
