from __future__ import annotations

import configparser
import dataclasses
import os
import shutil
from dataclasses import dataclass, field

from errors import ItemFailure, NotFound, PartialFailure, QmgrError
from models import VMRecord

from .store import VMStore, record_from_fields, record_to_fields


@dataclass
class BatchResult:
    """Outcome of a batch import/export: what went through and what did not."""

    items: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def fail(self, item: str, reason: str) -> None:
        print(f"[bundle] {item}: {reason}")
        self.failures.append(ItemFailure(item=item, reason=reason))

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialFailure(self.failures)


def _same_file(a: str, b: str) -> bool:
    if os.path.exists(a) and os.path.exists(b):
        return os.path.samefile(a, b)
    return os.path.abspath(a) == os.path.abspath(b)


def _copy_into(src: str, folder: str) -> str:
    """Copy src into folder (no-op if it is already there); returns the destination."""
    dest = os.path.join(folder, os.path.basename(src))
    if not _same_file(src, dest):
        shutil.copy2(src, dest)
    return dest


def _claim_dest(src: str, dest_dir: str, section: str) -> str:
    """
    Reserve a path in dest_dir for src without replacing anything already there.

    Tries the bare file name, then ``<section>-<name>``, then numbered variants.
    The path is created empty (O_EXCL) so a concurrent import cannot take it too.
    """
    base = os.path.basename(src)
    stem, ext = os.path.splitext(base)
    candidates = [base, f"{section}-{base}"]
    candidates += (f"{section}-{stem}-{n}{ext}" for n in range(2, 1000))
    for cand in candidates:
        dest = os.path.join(dest_dir, cand)
        if _same_file(src, dest):
            return dest
        try:
            fd = os.open(dest, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            continue
        os.close(fd)
        return dest
    raise FileExistsError(f"No free file name for {base} in {dest_dir}")


def _sidecar_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # type: ignore[assignment, method-assign]
    return parser


def export_vm(vm: VMRecord, folder: str) -> BatchResult:
    """
    Copy the VM's disk/iso into folder and write ``<name>.ini`` next to them.

    The sidecar references the files by bare file name. A missing source file is
    reported and skipped; the sidecar is written regardless.
    """
    print("[bundle] Exporting", vm.name, "to", folder)
    os.makedirs(folder, exist_ok=True)
    result = BatchResult()

    for label, path in (("disk", vm.disk), ("iso", vm.iso)):
        if not path:
            continue
        if not os.path.isfile(path):
            result.fail(path, f"{label} file not found")
            continue
        try:
            result.items.append(_copy_into(path, folder))
        except OSError as e:
            result.fail(path, f"could not copy {label}: {e}")

    fields = record_to_fields(vm)
    fields["disk"] = os.path.basename(vm.disk) if vm.disk else ""
    fields["iso"] = os.path.basename(vm.iso) if vm.iso else ""

    parser = _sidecar_parser()
    parser.add_section(vm.name)
    for key, value in fields.items():
        parser.set(vm.name, key, value)

    sidecar = os.path.join(folder, f"{vm.name}.ini")
    if os.path.dirname(os.path.abspath(sidecar)) != os.path.abspath(folder):
        result.fail(sidecar, "VM name does not map to a file inside the folder")
        return result
    try:
        with open(sidecar, "w", encoding="utf-8") as f:
            parser.write(f)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        result.fail(sidecar, f"could not write sidecar: {e}")
        return result
    result.items.append(sidecar)
    return result


def _import_file(
    ref: str, label: str, folder: str, dest_dir: str, section: str, result: BatchResult
) -> str:
    """Copy a referenced file from the bundle; empty string when it cannot be used."""
    if not ref:
        return ""
    src = os.path.join(folder, os.path.basename(ref))
    if not os.path.isfile(src):
        result.fail(f"{section}:{ref}", f"{label} file not found in bundle")
        return ""
    try:
        dest = _claim_dest(src, dest_dir, section)
    except OSError as e:
        result.fail(f"{section}:{ref}", f"could not copy {label}: {e}")
        return ""
    if _same_file(src, dest):
        return dest
    try:
        shutil.copy2(src, dest)
    except OSError as e:
        os.remove(dest)
        result.fail(f"{section}:{ref}", f"could not copy {label}: {e}")
        return ""
    if os.path.basename(dest) != os.path.basename(src):
        print(f"[bundle] {src} copied as {dest}, the bare name was taken")
    return dest


def import_folder(folder: str, store: VMStore, dest_dir: str) -> BatchResult:
    """
    Import every VM section of every ``*.ini`` in folder.

    Referenced disk/iso files are copied into dest_dir and the record is pointed
    at the copies; a missing file clears that field. Bad files and sections are
    skipped and reported, the rest of the batch still goes through.
    """
    if not os.path.isdir(folder):
        raise NotFound(f"Import folder not found: {folder}")
    sidecars = sorted(
        f
        for f in os.listdir(folder)
        if f.lower().endswith(".ini") and os.path.isfile(os.path.join(folder, f))
    )
    if not sidecars:
        raise NotFound(f"No INI file found in {folder}")

    print("[bundle] Importing from", folder, sidecars)
    os.makedirs(dest_dir, exist_ok=True)
    result = BatchResult()

    for sidecar in sidecars:
        parser = _sidecar_parser()
        try:
            with open(os.path.join(folder, sidecar), "r", encoding="utf-8") as f:
                parser.read_file(f)
        except (OSError, UnicodeDecodeError, configparser.Error) as e:
            result.fail(sidecar, f"unreadable: {e}")
            continue

        for section in parser.sections():
            try:
                vm = record_from_fields(section, dict(parser.items(section)))
            except QmgrError as e:
                result.fail(f"{sidecar}:{section}", str(e))
                continue

            vm = dataclasses.replace(
                vm,
                disk=_import_file(vm.disk, "disk", folder, dest_dir, section, result),
                iso=_import_file(vm.iso, "iso", folder, dest_dir, section, result),
            )
            try:
                store.put(vm)
            except QmgrError as e:
                result.fail(f"{sidecar}:{section}", str(e))
                continue
            result.items.append(vm.name)

    return result


def delete_vm_files(vm: VMRecord, disk: bool, iso: bool) -> BatchResult:
    """Remove the VM's disk and/or iso from disk; missing files are skipped."""
    result = BatchResult()
    for wanted, path in ((disk, vm.disk), (iso, vm.iso)):
        if not wanted or not path or not os.path.exists(path):
            continue
        try:
            os.remove(path)
            result.items.append(path)
        except OSError as e:
            result.fail(path, f"could not delete: {e}")
    return result
