import subprocess
import types

import qemu_manager.host as host


def test_linux_probe_checks_dev_kvm(monkeypatch):
    monkeypatch.setattr(host.settings, "VM_FORCE_TCG", False, raising=False)
    monkeypatch.setattr(host.os.path, "exists", lambda p: p == "/dev/kvm")
    assert host.has_virtualization("linux") is True

    monkeypatch.setattr(host.os.path, "exists", lambda p: False)
    assert host.has_virtualization("linux") is False


def test_force_tcg_disables_probe(monkeypatch):
    monkeypatch.setattr(host.settings, "VM_FORCE_TCG", True, raising=False)
    monkeypatch.setattr(host.os.path, "exists", lambda p: True)
    assert host.has_virtualization("linux") is False


def test_darwin_probe_reads_sysctl(monkeypatch):
    monkeypatch.setattr(host.settings, "VM_FORCE_TCG", False, raising=False)
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return types.SimpleNamespace(stdout="1\n")

    monkeypatch.setattr(host.subprocess, "run", fake_run)
    assert host.has_virtualization("darwin") is True
    assert calls == [["sysctl", "-n", "kern.hv_support"]]


def test_windows_probe_falls_through_queries(monkeypatch):
    monkeypatch.setattr(host.settings, "VM_FORCE_TCG", False, raising=False)
    outputs = iter(["False\r\n", "True\r\n"])
    monkeypatch.setattr(
        host.subprocess,
        "run",
        lambda args, **kwargs: types.SimpleNamespace(stdout=next(outputs)),
    )
    assert host.has_virtualization("windows") is True


def test_probe_failure_means_no_virtualization(monkeypatch):
    monkeypatch.setattr(host.settings, "VM_FORCE_TCG", False, raising=False)

    def _raise(args, **kwargs):
        raise subprocess.CalledProcessError(1, args)

    monkeypatch.setattr(host.subprocess, "run", _raise)
    assert host.has_virtualization("windows") is False
    assert host.has_virtualization("darwin") is False

    def _missing(args, **kwargs):
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(host.subprocess, "run", _missing)
    assert host.has_virtualization("windows") is False


def test_make_profile_uses_platform_table(monkeypatch):
    monkeypatch.setattr(host.settings, "VM_QEMU_BIN", "/opt/qemu", raising=False)
    monkeypatch.setattr(host.settings, "VM_QEMU_IMG_BIN", "/opt/qemu-img", raising=False)

    win = host.make_profile("windows", True)
    assert win.accelerator == "whpx"
    assert win.hw_accelerators == {"whpx", "hax"}
    assert win.audio == "dsound"
    assert win.qemu_bin == "/opt/qemu"
    assert win.qemu_img_bin == "/opt/qemu-img"

    other = host.make_profile("plan9", False)
    assert other.system == "linux"
    assert other.accelerator == "kvm"
    assert other.virtualization is False


def test_resolve_bin_prefers_existing_default_then_path(monkeypatch):
    monkeypatch.setattr(
        host.os.path, "exists", lambda p: p == "C:/Program Files/qemu/qemu-img.exe"
    )
    monkeypatch.setattr(host.os.path, "isabs", lambda p: p.startswith("C:/"))
    assert (
        host._resolve_bin("", ("C:/Program Files/qemu/qemu-img.exe", "qemu-img.exe"))
        == "C:/Program Files/qemu/qemu-img.exe"
    )

    monkeypatch.setattr(host.os.path, "exists", lambda p: False)
    monkeypatch.setattr(host.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert host._resolve_bin("", ("qemu-img",)) == "/usr/bin/qemu-img"

    monkeypatch.setattr(host.shutil, "which", lambda name: None)
    assert host._resolve_bin("", ("qemu-img",)) == "qemu-img"
    assert host._resolve_bin("/custom/qemu-img", ("qemu-img",)) == "/custom/qemu-img"


def test_host_system_maps_unknown_to_linux(monkeypatch):
    monkeypatch.setattr(host.platform, "system", lambda: "Windows")
    assert host.host_system() == "windows"
    monkeypatch.setattr(host.platform, "system", lambda: "FreeBSD")
    assert host.host_system() == "linux"
