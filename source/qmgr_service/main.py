from __future__ import annotations

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import settings
import state
from errors import (
    AlreadyExists,
    ConfigError,
    ConflictError,
    NotFound,
    PartialFailure,
    QmgrError,
    SpawnError,
    ToolError,
    ValidationError,
)

from metrics import router_metrics
from routes import vms_router, disks_router, bundles_router


_STATUS_BY_ERROR: list[tuple[type[QmgrError], int]] = [
    (ValidationError, 422),
    (NotFound, 404),
    (AlreadyExists, 409),
    (ConflictError, 409),
    (SpawnError, 500),
    (ToolError, 500),
    (PartialFailure, 500),
    (ConfigError, 500),
]


@asynccontextmanager
async def lifespan(_app: FastAPI):
    os.makedirs(settings.VM_BASE_DIR, exist_ok=True)
    yield
    killed = state.supervisor.kill_all()
    if killed:
        print(f"Stopped {killed} VM process(es) on shutdown")


# ===== FastAPI app =====
app = FastAPI(title="qmgr", version="0.1.0", lifespan=lifespan)


@app.exception_handler(QmgrError)
async def qmgr_error_handler(_request: Request, exc: QmgrError):
    status = 400
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            status = code
            break
    print(f"Request failed ({status}): {exc}")
    return JSONResponse({"detail": str(exc)}, status_code=status)


@app.get("/health")
async def health():
    return JSONResponse({"ok": "True"})


app.include_router(router_metrics)
app.include_router(vms_router)
app.include_router(disks_router)
app.include_router(bundles_router)

# ===== Entrypoint =====
if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=False)
