from .vms import (
    VMRecord,
    VMHandle,
    VMState,
    VMCreate,
    VMOut,
    ACCEL_TYPES,
    VNC_BASE_PORT,
)

from .control import (
    VMAction,
    VMRename,
    ElementResponse,
    CommandOut,
    DiskCreate,
    BundlePath,
    FailureOut,
    BundleResult,
    DeleteResult,
)

from .metrics import MachineMetrics


__all__ = [
    "VMRecord",
    "VMHandle",
    "VMState",
    "VMCreate",
    "VMOut",
    "ACCEL_TYPES",
    "VNC_BASE_PORT",
    "VMAction",
    "VMRename",
    "ElementResponse",
    "CommandOut",
    "DiskCreate",
    "BundlePath",
    "FailureOut",
    "BundleResult",
    "DeleteResult",
    "MachineMetrics",
]
