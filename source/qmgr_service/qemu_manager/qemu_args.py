from models.vms import VMRecord, VNC_BASE_PORT, VNC_MAX_PORT

from errors import ValidationError
from .host import HostProfile, HW_ACCELERATORS


def correct_accelerator(backend: str, host: HostProfile) -> str:
    """
    Swap a hardware backend that does not exist on this host for the native one
    (or tcg without virtualization support). Applying it twice is a no-op.
    """
    if backend in HW_ACCELERATORS and backend not in host.hw_accelerators:
        return host.accelerator if host.virtualization else "tcg"
    return backend


def select_accelerator(vm: VMRecord, host: HostProfile) -> str:
    if vm.accel_override and vm.accel_type != "default":
        backend = vm.accel_type
    else:
        backend = host.accelerator if host.virtualization else "tcg"
    return correct_accelerator(backend, host)


def display_index(port: int) -> int:
    """VNC display number for a TCP port in 5900..5999."""
    if not VNC_BASE_PORT <= port <= VNC_MAX_PORT:
        raise ValidationError(
            f"VNC port must be between {VNC_BASE_PORT} and {VNC_MAX_PORT}, got {port}."
        )
    return port - VNC_BASE_PORT


def validate_for_launch(vm: VMRecord) -> None:
    if vm.hda and not vm.disk.strip():
        raise ValidationError("Primary HDD is enabled but no disk image is set.")


def compile_args(vm: VMRecord, host: HostProfile) -> list[str]:
    """
    Build the QEMU argument vector for a VM record (without the binary).

    Pure: nothing here touches the filesystem or spawns a process. Every flag is
    followed by its value(s), in the order QEMU receives them.
    """
    validate_for_launch(vm)

    args: list[str] = ["-accel", select_accelerator(vm, host)]
    args += ["-m", str(vm.mem)]
    if vm.cpu.strip():
        args += ["-cpu", vm.cpu]

    if vm.hda:
        args += ["-hda", vm.disk]
    if vm.iso:
        args += ["-cdrom", vm.iso]

    args += [
        "-boot",
        "menu=on",
        "-vga",
        "std",
        "-usb",
        "-device",
        "usb-tablet",
        "-name",
        vm.name,
    ]

    if vm.net:
        args += ["-net", "nic", "-net", "user"]

    if vm.audio:
        args += [
            "-audiodev",
            f"{host.audio},id=snd0",
            "-device",
            "ich9-intel-hda",
            "-device",
            "hda-output,audiodev=snd0",
        ]

    if vm.vnc:
        vnc_arg = f":{display_index(vm.vnc_port)}"
        if vm.vnc_pass:
            vnc_arg += ",password=on"
        args += ["-vnc", vnc_arg]

    args += ["-display", host.display, "-monitor", "stdio"]
    return args


def build_command(vm: VMRecord, host: HostProfile) -> list[str]:
    """Full argv: QEMU binary for this host followed by the compiled args."""
    return [host.qemu_bin] + compile_args(vm, host)
