from __future__ import annotations

from fastapi import HTTPException, APIRouter, Query

import state
from errors import AlreadyExists, ConflictError, NotFound
from implementations import delete_vm_files, export_vm
from qemu_manager import build_command, detect_host

from models import (
    VMState,
    VMCreate,
    VMOut,
    VMAction,
    VMRecord,
    VMRename,
    ElementResponse,
    CommandOut,
    BundlePath,
    BundleResult,
    DeleteResult,
    FailureOut,
)


vms_router = APIRouter(prefix="/vms")


def _get_or_404(name: str) -> VMRecord:
    try:
        return state.store.get(name)
    except NotFound as e:
        raise HTTPException(404, "VM not found") from e


def _rename(old: str, new: str) -> VMRecord:
    """Move the record and any live process handle from old to new."""
    if state.supervisor.status(new) == VMState.running:
        raise ConflictError(f"A VM process is already registered as {new!r}")
    vm = state.store.rename(old, new)
    state.supervisor.rekey(old, new)
    print(f"[vms] Renamed {old} -> {new}")
    return vm


# ---- REST Endpoints ----
@vms_router.get("/", response_model=list[VMOut])
async def list_vms() -> list[VMOut]:
    return [VMOut.from_record(v, state.supervisor) for v in state.store.all().values()]


@vms_router.post("/", response_model=VMOut, status_code=201)
def create_vm(req: VMCreate) -> VMOut:
    vm = req.to_record()
    if state.store.exists(vm.name):
        raise AlreadyExists("A VM with this name already exists. Creation aborted.")
    state.store.put(vm)
    return VMOut.from_record(vm, state.supervisor)


@vms_router.get("/{name}", response_model=VMOut)
async def get_vm(name: str) -> VMOut:
    vm = _get_or_404(name)
    return VMOut.from_record(vm, state.supervisor)


@vms_router.put("/{name}", response_model=VMOut)
def edit_vm(name: str, req: VMCreate) -> VMOut:
    _get_or_404(name)
    vm = req.to_record()
    if vm.name != name:
        if state.store.exists(vm.name):
            raise AlreadyExists(
                "A VM with the new name already exists. Save aborted."
            )
        _rename(name, vm.name)
    state.store.put(vm)
    return VMOut.from_record(vm, state.supervisor)


@vms_router.post("/{name}/rename", response_model=VMOut)
def rename_vm(name: str, req: VMRename) -> VMOut:
    new_name = req.new_name.strip()
    if not new_name:
        raise HTTPException(422, "New name is required")
    if new_name == name:
        return VMOut.from_record(_get_or_404(name), state.supervisor)
    vm = _rename(name, new_name)
    return VMOut.from_record(vm, state.supervisor)


@vms_router.delete("/{name}", response_model=DeleteResult)
def delete_vm(
    name: str,
    delete_disk: bool = Query(False, description="Also delete the disk image"),
    delete_iso: bool = Query(False, description="Also delete the ISO file"),
) -> DeleteResult:
    vm = _get_or_404(name)
    killed = state.supervisor.kill(name)
    files = delete_vm_files(vm, disk=delete_disk, iso=delete_iso)
    state.store.remove(name)
    return DeleteResult(
        ok=files.ok,
        killed=killed,
        deleted_files=files.items,
        failures=[FailureOut(item=f.item, reason=f.reason) for f in files.failures],
    )


@vms_router.get("/{name}/command", response_model=CommandOut)
async def vm_command(name: str) -> CommandOut:
    vm = _get_or_404(name)
    return CommandOut(argv=build_command(vm, detect_host()))


@vms_router.post("/{name}/actions", response_model=ElementResponse)
def action_vm(name: str, act: VMAction) -> ElementResponse:
    vm = _get_or_404(name)

    if act.action == "launch":
        argv = build_command(vm, detect_host())
        handle = state.supervisor.start(vm.name, argv)
        return ElementResponse(ok=True, reason=f"launched (pid {handle.pid})")
    if act.action == "kill":
        if state.supervisor.kill(name):
            return ElementResponse(ok=True, reason="VM process terminated.")
        return ElementResponse(
            ok=True, reason="No running VM process found for this VM."
        )
    raise HTTPException(400, "Unsupported action")


@vms_router.post("/{name}/export", response_model=BundleResult)
def export_endpoint(name: str, req: BundlePath) -> BundleResult:
    vm = _get_or_404(name)
    result = export_vm(vm, req.folder)
    return BundleResult(
        ok=result.ok,
        items=result.items,
        failures=[FailureOut(item=f.item, reason=f.reason) for f in result.failures],
    )
