import os
from pathlib import Path
from dotenv import load_dotenv

_ = load_dotenv()

BASE_DIR = Path(__file__).resolve().parent
VM_BASE_DIR = os.environ.get("VM_BASE_DIR", os.path.join(BASE_DIR, "vm_data"))

# ini | memory | redis
VM_STORE_BACKEND: str = os.environ.get("VM_STORE_BACKEND", "ini").lower()
VM_DATABASE_PATH: str = os.environ.get(
    "VM_DATABASE_PATH", os.path.join(VM_BASE_DIR, "database.ini")
)
VM_IMPORT_DIR: str = os.environ.get(
    "VM_IMPORT_DIR", os.path.join(VM_BASE_DIR, "imported")
)

# Empty means "resolve from the host profile"
VM_QEMU_BIN: str = os.environ.get("VM_QEMU_BIN", "")
VM_QEMU_IMG_BIN: str = os.environ.get("VM_QEMU_IMG_BIN", "")

VM_KILL_TIMEOUT_S = float(os.environ.get("VM_KILL_TIMEOUT_S", "5"))
VM_FORCE_TCG: bool = os.environ.get("VM_FORCE_TCG", "").lower() == "true"
VM_DEFAULT_CPU: str = os.environ.get("QMGR_DEFAULT_CPU", "generic64")

REDIS_URL: str = os.environ.get("REDIS_URL", "redis://localhost:6379/1")
REDIS_PREFIX: str = os.environ.get("REDIS_PREFIX", "qmgr")

HOST: str = os.environ.get("HOST", "127.0.0.1")
PORT = int(os.environ.get("PORT", "8080"))
