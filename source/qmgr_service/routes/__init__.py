from .vms import vms_router
from .files import disks_router, bundles_router

__all__ = ["vms_router", "disks_router", "bundles_router"]
