from .store import (
    VMStore,
    InMemoryStore,
    IniStore,
    RedisStore,
    make_store,
    record_from_fields,
    record_to_fields,
)
from .supervisor import ProcessSupervisor
from .bundle import BatchResult, export_vm, import_folder, delete_vm_files

__all__ = [
    "VMStore",
    "InMemoryStore",
    "IniStore",
    "RedisStore",
    "make_store",
    "record_from_fields",
    "record_to_fields",
    "ProcessSupervisor",
    "BatchResult",
    "export_vm",
    "import_folder",
    "delete_vm_files",
]
