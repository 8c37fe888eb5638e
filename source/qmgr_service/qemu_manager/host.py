import os
import platform
import shutil
import subprocess
from dataclasses import dataclass
from functools import lru_cache

import settings


@dataclass(frozen=True)
class PlatformTraits:
    accelerator: str
    hw_accelerators: frozenset[str]
    audio: str
    display: str
    qemu_defaults: tuple[str, ...]
    qemu_img_defaults: tuple[str, ...]


PLATFORMS: dict[str, PlatformTraits] = {
    "linux": PlatformTraits(
        accelerator="kvm",
        hw_accelerators=frozenset({"kvm"}),
        audio="pa",
        display="sdl",
        qemu_defaults=("qemu-system-x86_64",),
        qemu_img_defaults=("qemu-img",),
    ),
    "windows": PlatformTraits(
        accelerator="whpx",
        hw_accelerators=frozenset({"whpx", "hax"}),
        audio="dsound",
        display="sdl",
        qemu_defaults=(
            "C:/Program Files/qemu/qemu-system-x86_64.exe",
            "qemu-system-x86_64.exe",
        ),
        qemu_img_defaults=("C:/Program Files/qemu/qemu-img.exe", "qemu-img.exe"),
    ),
    "darwin": PlatformTraits(
        accelerator="hvf",
        hw_accelerators=frozenset({"hvf"}),
        audio="coreaudio",
        display="cocoa",
        qemu_defaults=(
            "/opt/homebrew/bin/qemu-system-x86_64",
            "/usr/local/bin/qemu-system-x86_64",
            "qemu-system-x86_64",
        ),
        qemu_img_defaults=(
            "/opt/homebrew/bin/qemu-img",
            "/usr/local/bin/qemu-img",
            "qemu-img",
        ),
    ),
}

# Every hardware backend any platform knows about; anything else (tcg) is portable.
HW_ACCELERATORS = frozenset().union(*(t.hw_accelerators for t in PLATFORMS.values()))


@dataclass(frozen=True)
class HostProfile:
    """What the launch compiler needs to know about the machine it runs on."""

    system: str
    virtualization: bool
    accelerator: str
    hw_accelerators: frozenset[str]
    audio: str
    display: str
    qemu_bin: str
    qemu_img_bin: str


def host_system() -> str:
    system = platform.system().lower()
    return system if system in PLATFORMS else "linux"


def _resolve_bin(override: str, candidates: tuple[str, ...]) -> str:
    """Explicit override, then the first absolute default that exists, then PATH."""
    if override:
        return override
    for cand in candidates:
        if os.path.isabs(cand) and os.path.exists(cand):
            return cand
    bare = candidates[-1]
    return shutil.which(bare) or bare


def _probe_windows() -> bool:
    queries = [
        "(Get-CimInstance Win32_Processor).VirtualizationFirmwareEnabled",
        "(Get-CimInstance Win32_ComputerSystem).HypervisorPresent",
    ]
    for query in queries:
        try:
            out = subprocess.run(
                ["powershell", "-NoProfile", "-Command", query],
                capture_output=True,
                text=True,
                check=True,
                timeout=10,
            ).stdout
        except (OSError, subprocess.SubprocessError) as e:
            print("[host] virtualization probe failed", e)
            continue
        if "true" in out.lower():
            return True
    return False


def _probe_darwin() -> bool:
    try:
        out = subprocess.run(
            ["sysctl", "-n", "kern.hv_support"],
            capture_output=True,
            text=True,
            check=True,
            timeout=5,
        ).stdout
    except (OSError, subprocess.SubprocessError) as e:
        print("[host] virtualization probe failed", e)
        return False
    return out.strip() == "1"


def has_virtualization(system: str | None = None) -> bool:
    """
    Single-boolean host capability probe.

    Linux: /dev/kvm present. macOS: Hypervisor.framework support flag.
    Windows: CPU virtualization enabled in firmware, or a hypervisor already running.
    """
    if settings.VM_FORCE_TCG:
        return False
    system = system or host_system()
    if system == "windows":
        return _probe_windows()
    if system == "darwin":
        return _probe_darwin()
    return os.path.exists("/dev/kvm")


def make_profile(system: str, virtualization: bool) -> HostProfile:
    traits = PLATFORMS.get(system, PLATFORMS["linux"])
    return HostProfile(
        system=system if system in PLATFORMS else "linux",
        virtualization=virtualization,
        accelerator=traits.accelerator,
        hw_accelerators=traits.hw_accelerators,
        audio=traits.audio,
        display=traits.display,
        qemu_bin=_resolve_bin(settings.VM_QEMU_BIN, traits.qemu_defaults),
        qemu_img_bin=_resolve_bin(settings.VM_QEMU_IMG_BIN, traits.qemu_img_defaults),
    )


@lru_cache(maxsize=1)
def detect_host() -> HostProfile:
    system = host_system()
    profile = make_profile(system, has_virtualization(system))
    print(
        f"[host] system: {profile.system}  virtualization: {profile.virtualization}  "
        f"qemu: {profile.qemu_bin}  qemu-img: {profile.qemu_img_bin}"
    )
    return profile
