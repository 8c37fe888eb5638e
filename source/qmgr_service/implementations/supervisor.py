from __future__ import annotations

import subprocess
import threading

import settings
from errors import ConflictError, SpawnError
from models import VMHandle, VMState


class ProcessSupervisor:
    """
    Owns the QEMU processes started by this service, at most one per VM name.

    Every registry access holds ``_lock``; request handlers run on a thread pool.
    """

    def __init__(self, kill_timeout_s: float | None = None) -> None:
        self.kill_timeout_s = (
            settings.VM_KILL_TIMEOUT_S if kill_timeout_s is None else kill_timeout_s
        )
        self._handles: dict[str, VMHandle] = {}
        self._lock = threading.RLock()

    def _reap(self, name: str) -> VMHandle | None:
        """Return the live handle for name, dropping it if the process has exited."""
        handle = self._handles.get(name)
        if handle is None:
            return None
        if not handle.alive():
            print(
                f"[supervisor] {name} exited with code {handle.proc.returncode}, dropping handle"
            )
            del self._handles[name]
            return None
        return handle

    def start(self, name: str, argv: list[str]) -> VMHandle:
        with self._lock:
            if self._reap(name) is not None:
                raise ConflictError(f"VM {name!r} is already running")

            print(f"[supervisor] Starting {name}: {argv}")
            try:
                proc = subprocess.Popen(argv)
            except (OSError, ValueError) as e:
                print("[supervisor] Failed to start QEMU", e)
                raise SpawnError(f"Failed to start QEMU: {e}") from e

            handle = VMHandle(name=name, argv=list(argv), proc=proc)
            self._handles[name] = handle
            print("Process executed", proc.pid)
            return handle

    def status(self, name: str) -> VMState:
        with self._lock:
            if self._reap(name) is None:
                return VMState.not_running
            return VMState.running

    def get(self, name: str) -> VMHandle | None:
        with self._lock:
            return self._handles.get(name)

    def names(self) -> set[str]:
        with self._lock:
            return set(self._handles)

    @staticmethod
    def _terminate(handle: VMHandle, timeout: float) -> None:
        p = handle.proc
        if p.poll() is not None:
            return
        try:
            p.terminate()
            try:
                p.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                print(f"[supervisor] {handle.name} ignored terminate, killing")
                p.kill()
                p.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            print(f"[supervisor] {handle.name} still alive after kill, giving up")
        except OSError as e:
            print("[supervisor] Error stopping process", e)

    def kill(self, name: str) -> bool:
        """
        Stop the VM process for name. Returns False when there was nothing alive
        to kill (no handle, or the process had already exited).

        Blocks up to the kill timeout (twice, if it has to escalate); the registry
        entry is removed whatever the outcome.
        """
        with self._lock:
            handle = self._reap(name)
            if handle is not None:
                del self._handles[name]
        if handle is None:
            print(f"[supervisor] No running VM process found for {name}")
            return False

        print(f"[supervisor] Killing {name} (pid {handle.pid})")
        self._terminate(handle, self.kill_timeout_s)
        return True

    def rekey(self, old_name: str, new_name: str) -> None:
        if old_name == new_name:
            return
        with self._lock:
            if self._reap(new_name) is not None:
                raise ConflictError(f"VM {new_name!r} is already running")
            handle = self._handles.pop(old_name, None)
            if handle is None:
                return
            handle.name = new_name
            self._handles[new_name] = handle

    def kill_all(self) -> int:
        cnt = 0
        for name in self.names():
            if self.kill(name):
                cnt += 1
        return cnt
