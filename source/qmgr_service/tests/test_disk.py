import types

import pytest

import qemu_manager.disk as disk
from errors import AlreadyExists, ToolError, ValidationError


class RunRecorder:
    def __init__(self, returncode=0, stderr=""):
        self.calls: list[list[str]] = []
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, args, **kwargs):
        self.calls.append(list(args))
        return types.SimpleNamespace(
            returncode=self.returncode, stdout="", stderr=self.stderr
        )


def test_create_runs_qemu_img(tmp_path, monkeypatch):
    run = RunRecorder()
    monkeypatch.setattr(disk.subprocess, "run", run)
    target = tmp_path / "nested" / "a.qcow2"

    out = disk.create_disk_image(str(target), 10, qemu_img="/usr/bin/qemu-img")

    assert out == str(target)
    assert run.calls == [
        ["/usr/bin/qemu-img", "create", "-f", "qcow2", str(target), "10G"]
    ]
    # parent directory prepared for the tool
    assert (tmp_path / "nested").is_dir()


def test_default_binary_comes_from_host(tmp_path, monkeypatch, profile):
    run = RunRecorder()
    monkeypatch.setattr(disk.subprocess, "run", run)
    monkeypatch.setattr(disk, "detect_host", lambda: profile("linux", True))

    disk.create_disk_image(str(tmp_path / "b.qcow2"), 1)

    assert run.calls[0][0] == "/usr/bin/qemu-img"
    assert run.calls[0][-1] == "1G"


def test_nonzero_exit_raises_tool_error(tmp_path, monkeypatch):
    monkeypatch.setattr(
        disk.subprocess, "run", RunRecorder(returncode=1, stderr="Permission denied\n")
    )
    with pytest.raises(ToolError) as exc:
        disk.create_disk_image(str(tmp_path / "c.qcow2"), 5, qemu_img="qemu-img")
    assert "Permission denied" in str(exc.value)


def test_missing_tool_raises_tool_error(tmp_path, monkeypatch):
    def _missing(args, **kwargs):
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(disk.subprocess, "run", _missing)
    with pytest.raises(ToolError):
        disk.create_disk_image(str(tmp_path / "d.qcow2"), 5, qemu_img="qemu-img")


def test_existing_file_is_never_overwritten(tmp_path, monkeypatch):
    run = RunRecorder()
    monkeypatch.setattr(disk.subprocess, "run", run)
    target = tmp_path / "e.qcow2"
    target.write_bytes(b"data")

    with pytest.raises(AlreadyExists):
        disk.create_disk_image(str(target), 5, qemu_img="qemu-img")

    assert run.calls == []
    assert target.read_bytes() == b"data"


@pytest.mark.parametrize("size", [0, -1, 1025])
def test_size_out_of_range(tmp_path, monkeypatch, size):
    run = RunRecorder()
    monkeypatch.setattr(disk.subprocess, "run", run)
    with pytest.raises(ValidationError):
        disk.create_disk_image(str(tmp_path / "f.qcow2"), size, qemu_img="qemu-img")
    assert run.calls == []


def test_blank_path_rejected(monkeypatch):
    monkeypatch.setattr(disk.subprocess, "run", RunRecorder())
    with pytest.raises(ValidationError):
        disk.create_disk_image("  ", 5, qemu_img="qemu-img")
