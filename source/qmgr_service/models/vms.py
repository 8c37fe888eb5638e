from __future__ import annotations
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal
import subprocess

from pydantic import BaseModel, Field, field_validator, model_validator

from typing import TYPE_CHECKING

import settings
from errors import ValidationError

if TYPE_CHECKING:
    from implementations import ProcessSupervisor


ACCEL_TYPES = ("default", "kvm", "whpx", "hax", "hvf", "tcg")
AccelType = Literal["default", "kvm", "whpx", "hax", "hvf", "tcg"]

MEM_MIN_MB = 64
MEM_MAX_MB = 65536
VNC_BASE_PORT = 5900
VNC_MAX_PORT = 5999


def _default_cpu() -> str:
    return settings.VM_DEFAULT_CPU


def name_problem(name: str) -> str | None:
    """Why name cannot be used as a VM name, or None when it can."""
    if not name or not name.strip():
        return "VM name is required."
    if name != name.strip():
        return "VM name must not start or end with whitespace."
    if "/" in name or "\\" in name or ".." in name:
        return "VM name must not contain path separators or '..'."
    return None


@dataclass(frozen=True)
class VMRecord:
    """
    Desired launch shape of one virtual machine.

    Snapshots are immutable; use ``dataclasses.replace`` to derive an edited copy.
    Range checks run on construction. The "primary disk needs a disk path" rule
    is checked when the record is submitted and again when it is compiled, since
    an imported record may legitimately lose its disk.
    """

    name: str
    disk: str = ""
    iso: str = ""
    mem: int = 4096
    cpu: str = field(default_factory=_default_cpu)
    net: bool = True
    audio: bool = False
    hda: bool = True
    vnc: bool = False
    vnc_port: int = VNC_BASE_PORT
    vnc_pass: bool = False
    accel_override: bool = False
    accel_type: str = "default"

    def __post_init__(self):
        # INI values lose surrounding whitespace, so every backend stores them stripped
        for attr in ("disk", "iso", "cpu"):
            object.__setattr__(self, attr, str(getattr(self, attr)).strip())
        problem = name_problem(self.name)
        if problem:
            raise ValidationError(problem)
        if not MEM_MIN_MB <= int(self.mem) <= MEM_MAX_MB:
            raise ValidationError(
                f"Memory must be between {MEM_MIN_MB} and {MEM_MAX_MB} MB, got {self.mem}."
            )
        if not VNC_BASE_PORT <= int(self.vnc_port) <= VNC_MAX_PORT:
            raise ValidationError(
                f"VNC port must be between {VNC_BASE_PORT} and {VNC_MAX_PORT}, got {self.vnc_port}."
            )
        if self.accel_type not in ACCEL_TYPES:
            raise ValidationError(f"Unknown accelerator type: {self.accel_type!r}")


@dataclass
class VMHandle:
    """Live QEMU process owned by the supervisor."""

    name: str
    argv: list[str]
    proc: subprocess.Popen[Any]
    started_at: float = field(default_factory=time.time)

    @property
    def pid(self) -> int:
        return self.proc.pid

    def alive(self) -> bool:
        return self.proc.poll() is None


class VMState(str, Enum):
    not_running = "not_running"
    running = "running"


class VMCreate(BaseModel):
    name: str = Field(..., min_length=1, json_schema_extra={"example": "vm1"})
    disk: str = Field("", description="Disk image path")
    iso: str = Field("", description="ISO image path, attached as cdrom")
    mem: int = Field(
        4096, ge=MEM_MIN_MB, le=MEM_MAX_MB, json_schema_extra={"example": 2048}
    )
    cpu: str = Field(default_factory=_default_cpu)
    net: bool = True
    audio: bool = False
    hda: bool = Field(True, description="Primary HDD present")
    vnc: bool = False
    vnc_port: int = Field(VNC_BASE_PORT, ge=VNC_BASE_PORT, le=VNC_MAX_PORT)
    vnc_pass: bool = False
    accel_override: bool = False
    accel_type: AccelType = "default"

    @field_validator("name", "disk", "iso", "cpu")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        problem = name_problem(v)
        if problem:
            raise ValueError(problem)
        return v

    @model_validator(mode="after")
    def _disk_for_primary_hdd(self) -> "VMCreate":
        if self.hda and not self.disk:
            raise ValueError("Disk image required for primary HDD.")
        return self

    def to_record(self) -> VMRecord:
        return VMRecord(**self.model_dump())


class VMOut(BaseModel):
    name: str
    disk: str
    iso: str
    mem: int
    cpu: str
    net: bool
    audio: bool
    hda: bool
    vnc: bool
    vnc_port: int
    vnc_pass: bool
    accel_override: bool
    accel_type: str
    state: VMState
    pid: int | None = None

    @staticmethod
    def from_record(vm: "VMRecord", supervisor: "ProcessSupervisor") -> "VMOut":
        state = supervisor.status(vm.name)
        handle = supervisor.get(vm.name)
        return VMOut(
            name=vm.name,
            disk=vm.disk,
            iso=vm.iso,
            mem=vm.mem,
            cpu=vm.cpu,
            net=vm.net,
            audio=vm.audio,
            hda=vm.hda,
            vnc=vm.vnc,
            vnc_port=vm.vnc_port,
            vnc_pass=vm.vnc_pass,
            accel_override=vm.accel_override,
            accel_type=vm.accel_type,
            state=state,
            pid=handle.pid if handle and state == VMState.running else None,
        )
