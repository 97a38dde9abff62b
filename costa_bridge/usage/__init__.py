from costa_bridge.usage.schemas import StreamState, UsageSnapshot
from costa_bridge.usage.stream import InvalidTransitionError, UsageStream

__all__ = [
    "InvalidTransitionError",
    "StreamState",
    "UsageSnapshot",
    "UsageStream",
]
