from __future__ import annotations

from fastapi import APIRouter

import settings
import state
from implementations import import_folder
from qemu_manager import create_disk_image

from models import (
    DiskCreate,
    ElementResponse,
    BundlePath,
    BundleResult,
    FailureOut,
)


disks_router = APIRouter(prefix="/disks")
bundles_router = APIRouter(prefix="/bundles")


@disks_router.post("/", response_model=ElementResponse, status_code=201)
def create_disk(req: DiskCreate) -> ElementResponse:
    path = create_disk_image(req.path, req.size_gb)
    return ElementResponse(ok=True, reason=f"Disk created successfully: {path}")


@bundles_router.post("/import", response_model=BundleResult)
def import_bundle(req: BundlePath) -> BundleResult:
    result = import_folder(req.folder, state.store, settings.VM_IMPORT_DIR)
    return BundleResult(
        ok=result.ok,
        items=result.items,
        failures=[FailureOut(item=f.item, reason=f.reason) for f in result.failures],
    )
