# conftest.py
import os
import sys
import pathlib
import subprocess

import pytest
from fastapi.testclient import TestClient

# ----------------------
# Path setup: ensure the service root is importable as top-level
# so imports like `import settings` resolve to qmgr_service/settings.py
# ----------------------
_THIS_DIR = pathlib.Path(__file__).resolve().parent
_PKG_ROOT = _THIS_DIR.parent  # qmgr_service/
if str(_PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(_PKG_ROOT))

# Never touch a real database file at import time
os.environ.setdefault("VM_STORE_BACKEND", "memory")

# After adjusting sys.path, import project modules
import settings  # noqa: E402
import state  # noqa: E402
import main  # noqa: E402
from routes import vms  # noqa: E402
from implementations import InMemoryStore, ProcessSupervisor  # noqa: E402
from qemu_manager import make_profile  # noqa: E402


# ----------------------
# Test Utilities / Fakes
# ----------------------
class FakePopen:
    """Stand-in for subprocess.Popen; the process "runs" until terminated."""

    _next_pid = 4000

    def __init__(self, args, hang_on_terminate: bool = False):
        self.args = list(args)
        FakePopen._next_pid += 1
        self.pid = FakePopen._next_pid
        self.returncode = None
        self.hang_on_terminate = hang_on_terminate
        self.terminated = False
        self.killed = False
        self.wait_timeouts: list[float | None] = []

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        if not self.hang_on_terminate:
            self.returncode = -15

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self, timeout=None):
        self.wait_timeouts.append(timeout)
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.returncode

    def exit(self, code: int = 0):
        self.returncode = code


class PopenRecorder:
    def __init__(self):
        self.calls: list[list[str]] = []
        self.procs: list[FakePopen] = []
        self.error: Exception | None = None
        self.hang_on_terminate = False

    def __call__(self, args, *a, **kw):
        self.calls.append(list(args))
        if self.error is not None:
            raise self.error
        proc = FakePopen(args, hang_on_terminate=self.hang_on_terminate)
        self.procs.append(proc)
        return proc


# ----------------------
# Shared Fixtures
# ----------------------
@pytest.fixture
def profile(monkeypatch):
    """
    Factory for host profiles with fixed binaries, independent of the machine
    running the tests.
    """
    monkeypatch.setattr(
        settings, "VM_QEMU_BIN", "/usr/bin/qemu-system-x86_64", raising=False
    )
    monkeypatch.setattr(settings, "VM_QEMU_IMG_BIN", "/usr/bin/qemu-img", raising=False)

    def _make(system: str = "linux", virtualization: bool = True):
        return make_profile(system, virtualization)

    return _make


@pytest.fixture
def fake_popen(monkeypatch) -> PopenRecorder:
    recorder = PopenRecorder()
    monkeypatch.setattr("implementations.supervisor.subprocess.Popen", recorder)
    return recorder


@pytest.fixture
def store_and_supervisor(tmp_path, monkeypatch, profile):
    """
    In-memory store and a real supervisor (fast kill timeout) patched into the
    app, a linux/KVM host profile, and temp dirs for imports.
    """
    base_dir = tmp_path / "vm_data"
    os.makedirs(base_dir, exist_ok=True)

    test_store = InMemoryStore()
    test_supervisor = ProcessSupervisor(kill_timeout_s=0.01)

    monkeypatch.setattr(settings, "VM_BASE_DIR", str(base_dir), raising=False)
    monkeypatch.setattr(
        settings, "VM_IMPORT_DIR", str(base_dir / "imported"), raising=False
    )
    monkeypatch.setattr(state, "store", test_store, raising=False)
    monkeypatch.setattr(state, "supervisor", test_supervisor, raising=False)

    host = profile("linux", True)
    monkeypatch.setattr(vms, "detect_host", lambda: host, raising=True)

    return test_store, test_supervisor, str(base_dir)


@pytest.fixture
def client(store_and_supervisor) -> TestClient:
    return TestClient(main.app)
