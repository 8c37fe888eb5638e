from __future__ import annotations
from pydantic import BaseModel


class MachineMetrics(BaseModel):
    """psutil snapshot of one supervised QEMU process."""

    name: str
    pid: int
    ts: float | int
    uptime_s: float | None
    cpu_percent: float | int | None
    rss_bytes: int | None
    rss_human: str | None
    rss_mib: float | int | None
    num_threads: int | None
    io: dict[str, object] | None
