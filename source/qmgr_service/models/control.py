from __future__ import annotations
from typing import Literal

from pydantic import BaseModel, Field


class VMAction(BaseModel):
    action: Literal["launch", "kill"]


class VMRename(BaseModel):
    new_name: str = Field(..., min_length=1, description="New VM name")


class ElementResponse(BaseModel):
    ok: bool
    reason: str = ""


class CommandOut(BaseModel):
    argv: list[str]


class DiskCreate(BaseModel):
    path: str = Field(..., min_length=1, description="Where to create the qcow2 file")
    size_gb: int = Field(10, ge=1, le=1024, json_schema_extra={"example": 10})


class BundlePath(BaseModel):
    folder: str = Field(..., min_length=1, description="Bundle folder")


class FailureOut(BaseModel):
    item: str
    reason: str


class BundleResult(BaseModel):
    ok: bool
    items: list[str] = Field(default_factory=list)
    failures: list[FailureOut] = Field(default_factory=list)


class DeleteResult(BaseModel):
    ok: bool
    killed: bool = False
    deleted_files: list[str] = Field(default_factory=list)
    failures: list[FailureOut] = Field(default_factory=list)
