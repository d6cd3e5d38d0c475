"""
Process figures for /health and /admin/status.
"""
import time

import psutil


def process_uptime() -> float:
    """Seconds since the OS started this process."""
    return max(0.0, time.time() - psutil.Process().create_time())


def memory_usage() -> dict[str, int]:
    memory = psutil.Process().memory_info()
    return {"rss": memory.rss, "vms": memory.vms}
