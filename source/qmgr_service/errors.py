from __future__ import annotations

from dataclasses import dataclass


class QmgrError(Exception):
    """Base class for every recoverable error raised by the manager."""


class ValidationError(QmgrError):
    """A VM record (or a request built from one) is malformed or incomplete."""


class NotFound(QmgrError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class AlreadyExists(QmgrError):
    pass


class ConflictError(QmgrError):
    """The supervisor already holds a live handle for that name."""


class SpawnError(QmgrError):
    pass


class ToolError(QmgrError):
    """qemu-img (or another helper binary) failed or could not be started."""


class ConfigError(QmgrError):
    """A configured backend cannot give the guarantees the manager relies on."""


@dataclass
class ItemFailure:
    item: str
    reason: str


class PartialFailure(QmgrError):
    def __init__(self, failures: list[ItemFailure]):
        self.failures = failures
        super().__init__(
            f"{len(failures)} item(s) failed: "
            + "; ".join(f"{f.item}: {f.reason}" for f in failures)
        )
