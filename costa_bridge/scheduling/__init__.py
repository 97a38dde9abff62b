"""
Timer abstractions shared by the polling supervisors.
"""

from costa_bridge.scheduling.scheduler import (
    AsyncioScheduler,
    ScheduledTask,
    Scheduler,
    TimerGroup,
    TimerHandle,
)

__all__ = [
    "AsyncioScheduler",
    "ScheduledTask",
    "Scheduler",
    "TimerGroup",
    "TimerHandle",
]
