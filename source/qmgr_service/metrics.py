import time
import psutil
from fastapi import HTTPException, APIRouter

import state

from models import MachineMetrics, VMState


router_metrics = APIRouter(prefix="/metrics")


def human_bytes(n: float | None) -> str:
    if n is None:
        return "-"
    for unit in ("B", "KB", "MB", "GB", "TB", "PB"):
        if n < 1024 or unit == "PB":
            return f"{n:.1f} {unit}"
        n /= 1024.0
    return "-"


def safe(call, default=None):
    try:
        return call()
    except (psutil.AccessDenied, psutil.ZombieProcess, psutil.NoSuchProcess):
        return default


@router_metrics.get("/{name}", response_model=MachineMetrics)
async def get_vm_metrics(name: str) -> MachineMetrics:
    if state.supervisor.status(name) != VMState.running:
        raise HTTPException(404, "No running VM process found for this VM.")
    handle = state.supervisor.get(name)
    if handle is None:
        raise HTTPException(404, "No running VM process found for this VM.")

    try:
        p = psutil.Process(handle.pid)
        p.cpu_percent(interval=None)
    except psutil.Error as e:
        print("Error with PID", e)
        raise HTTPException(500, "Error with PID, something went wrong")

    try:
        rss = safe(lambda: p.memory_info().rss)
        io = safe(lambda: p.io_counters()._asdict())
        now = time.time()
        return MachineMetrics(
            name=handle.name,
            pid=handle.pid,
            ts=now,
            uptime_s=now - handle.started_at,
            cpu_percent=safe(lambda: p.cpu_percent(interval=None)),
            rss_bytes=rss,
            rss_human=human_bytes(rss),
            rss_mib=rss / (1024 * 1024) if rss else None,
            num_threads=safe(p.num_threads),
            io=io or {},
        )
    except psutil.Error as e:
        print("Error with psutils", e)
        raise HTTPException(500, f"Issues with psutils {e}")
