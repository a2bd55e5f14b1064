"""
Drivers: decide when processes request and release, and when time advances.

- WorkloadScheduler: random request/release traffic with pause/resume
"""

from skmutex.driver.scheduler import WorkloadScheduler, WorkloadSchedulerConfig

__all__ = [
    "WorkloadScheduler",
    "WorkloadSchedulerConfig",
]
