from __future__ import annotations

import configparser
import dataclasses
import os
import tempfile
import threading
from typing import Mapping

from redis.client import Pipeline, Redis
from redis.exceptions import RedisError

import settings
from errors import AlreadyExists, ConfigError, NotFound, ValidationError
from models import VMRecord


_BOOL_FIELDS = ("net", "audio", "hda", "vnc", "vnc_pass", "accel_override")
_INT_FIELDS = ("mem", "vnc_port")
_STR_FIELDS = ("disk", "iso", "cpu", "accel_type")


def _defaults() -> dict[str, object]:
    return {
        "disk": "",
        "iso": "",
        "mem": 4096,
        "cpu": settings.VM_DEFAULT_CPU,
        "net": True,
        "audio": False,
        "hda": True,
        "vnc": False,
        "vnc_port": 5900,
        "vnc_pass": False,
        "accel_override": False,
        "accel_type": "default",
    }


# ---- (de)Serialization ----
def record_to_fields(vm: VMRecord) -> dict[str, str]:
    """Flat string map of a record, the shape of one INI section / Redis hash."""
    return {
        "disk": vm.disk,
        "iso": vm.iso,
        "mem": str(int(vm.mem)),
        "cpu": vm.cpu,
        "net": "1" if vm.net else "0",
        "audio": "1" if vm.audio else "0",
        "hda": "1" if vm.hda else "0",
        "vnc": "1" if vm.vnc else "0",
        "vnc_port": str(int(vm.vnc_port)),
        "vnc_pass": "1" if vm.vnc_pass else "0",
        "accel_override": "1" if vm.accel_override else "0",
        "accel_type": vm.accel_type,
    }


def _as_int(x: object, default: int) -> int:
    try:
        return int(str(x).strip())
    except (TypeError, ValueError):
        return default


def _as_bool(x: object, default: bool) -> bool:
    s = str(x).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


def record_from_fields(name: str, fields: Mapping[str, str]) -> VMRecord:
    """
    Build a record from a flat string map, field by field.

    Absent keys (and values that do not parse) take the documented defaults;
    values that parse but break a record invariant raise ValidationError.
    """
    defaults = _defaults()
    values: dict[str, object] = {}
    for key in _STR_FIELDS:
        values[key] = str(fields[key]) if key in fields else defaults[key]
    for key in _INT_FIELDS:
        values[key] = (
            _as_int(fields[key], int(defaults[key]))  # type: ignore[arg-type]
            if key in fields
            else defaults[key]
        )
    for key in _BOOL_FIELDS:
        values[key] = (
            _as_bool(fields[key], bool(defaults[key])) if key in fields else defaults[key]
        )
    return VMRecord(name=name, **values)  # type: ignore[arg-type]


class VMStore:
    """Persistence contract: VM name -> VMRecord."""

    def list(self) -> set[str]:
        raise NotImplementedError

    def get(self, name: str) -> VMRecord:
        raise NotImplementedError

    def put(self, vm: VMRecord) -> None:
        raise NotImplementedError

    def remove(self, name: str) -> None:
        raise NotImplementedError

    def rename(self, old: str, new: str) -> VMRecord:
        raise NotImplementedError

    def exists(self, name: str) -> bool:
        return name in self.list()

    def all(self) -> dict[str, VMRecord]:
        out: dict[str, VMRecord] = {}
        for name in sorted(self.list()):
            try:
                out[name] = self.get(name)
            except (NotFound, ValidationError) as e:
                print(f"[store] Skipping {name!r}: {e}")
                continue
        return out


class InMemoryStore(VMStore):
    """Process-lifetime map; nothing survives a restart."""

    def __init__(self) -> None:
        self._data: dict[str, VMRecord] = {}
        self._lock = threading.RLock()

    def list(self) -> set[str]:
        with self._lock:
            return set(self._data)

    def get(self, name: str) -> VMRecord:
        with self._lock:
            if name not in self._data:
                raise NotFound(name)
            return self._data[name]

    def put(self, vm: VMRecord) -> None:
        with self._lock:
            self._data[vm.name] = vm

    def remove(self, name: str) -> None:
        with self._lock:
            self._data.pop(name, None)

    def rename(self, old: str, new: str) -> VMRecord:
        with self._lock:
            if old not in self._data:
                raise NotFound(old)
            if new in self._data:
                raise AlreadyExists(new)
            vm = dataclasses.replace(self._data[old], name=new)
            del self._data[old]
            self._data[new] = vm
            return vm


class IniStore(VMStore):
    """
    One INI file, one section per VM.

    Every mutation rewrites the whole file: written to a temp file in the same
    directory, flushed, fsynced and moved over the old one before returning.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.RLock()

    @staticmethod
    def _parser() -> configparser.ConfigParser:
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str  # type: ignore[assignment, method-assign]
        return parser

    @staticmethod
    def _check_section_name(name: str) -> None:
        if name == configparser.DEFAULTSECT or any(c in name for c in "[]\r\n"):
            raise ValidationError(f"{name!r} cannot be used as a VM name")

    def _load(self) -> configparser.ConfigParser:
        parser = self._parser()
        if os.path.exists(self.path):
            with open(self.path, "r", encoding="utf-8") as f:
                parser.read_file(f)
        return parser

    def _save(self, parser: configparser.ConfigParser) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".database-", suffix=".ini", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                parser.write(f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def list(self) -> set[str]:
        with self._lock:
            return set(self._load().sections())

    def get(self, name: str) -> VMRecord:
        with self._lock:
            parser = self._load()
        if not parser.has_section(name):
            raise NotFound(name)
        return record_from_fields(name, dict(parser.items(name)))

    def put(self, vm: VMRecord) -> None:
        self._check_section_name(vm.name)
        with self._lock:
            parser = self._load()
            if parser.has_section(vm.name):
                parser.remove_section(vm.name)
            parser.add_section(vm.name)
            for key, value in record_to_fields(vm).items():
                parser.set(vm.name, key, value)
            self._save(parser)

    def remove(self, name: str) -> None:
        with self._lock:
            parser = self._load()
            if parser.remove_section(name):
                self._save(parser)

    def rename(self, old: str, new: str) -> VMRecord:
        self._check_section_name(new)
        with self._lock:
            parser = self._load()
            if not parser.has_section(old):
                raise NotFound(old)
            if parser.has_section(new):
                raise AlreadyExists(new)
            vm = dataclasses.replace(
                record_from_fields(old, dict(parser.items(old))), name=new
            )
            parser.remove_section(old)
            parser.add_section(new)
            for key, value in record_to_fields(vm).items():
                parser.set(new, key, value)
            self._save(parser)
            return vm


class RedisStore(VMStore):
    """
    One Redis hash per VM plus a set holding every VM name.

    A write only counts once it is on disk, so the server must run with
    ``appendonly yes`` and ``appendfsync always``: Redis then fsyncs the AOF
    before it replies. The constructor checks this with CONFIG GET and refuses
    any other setup.
    """

    def __init__(self, url: str, namespace: str = "qmgr") -> None:
        self.r: Redis = Redis.from_url(
            url,
            decode_responses=True,
        )
        self.ns: str = namespace
        self.names_key: str = f"{self.ns}:vms"
        self._check_durability()

    def _check_durability(self) -> None:
        try:
            cfg = self.r.config_get("append*")
        except RedisError as e:
            raise ConfigError(f"Could not read Redis persistence settings: {e}") from e
        appendonly = str(cfg.get("appendonly", "")).lower()  # type: ignore[union-attr]
        appendfsync = str(cfg.get("appendfsync", "")).lower()  # type: ignore[union-attr]
        if appendonly != "yes" or appendfsync != "always":
            raise ConfigError(
                "Redis store needs appendonly=yes and appendfsync=always, "
                f"server has appendonly={appendonly or '?'} appendfsync={appendfsync or '?'}"
            )

    # ---- Keys ----
    def _key(self, name: str) -> str:
        return f"{self.ns}:vm:{name}"

    def list(self) -> set[str]:
        return set(self.r.smembers(self.names_key))  # type: ignore[arg-type]

    def exists(self, name: str) -> bool:
        return bool(self.r.sismember(self.names_key, name))

    def get(self, name: str) -> VMRecord:
        fields = self.r.hgetall(self._key(name))
        if not fields:
            raise NotFound(name)
        # pyrefly: ignore  # bad-argument-type
        return record_from_fields(name, fields)

    def put(self, vm: VMRecord) -> None:
        key = self._key(vm.name)
        p = self.r.pipeline()
        p.delete(key)
        p.hset(key, mapping=record_to_fields(vm))
        p.sadd(self.names_key, vm.name)
        p.execute()

    def remove(self, name: str) -> None:
        p = self.r.pipeline()
        p.delete(self._key(name))
        p.srem(self.names_key, name)
        p.execute()

    def rename(self, old: str, new: str) -> VMRecord:
        """Check-and-move under WATCH; redis-py retries if another client interferes."""

        def _move(p: Pipeline) -> VMRecord:
            fields = p.hgetall(self._key(old))
            if not fields:
                raise NotFound(old)
            if p.sismember(self.names_key, new):
                raise AlreadyExists(new)
            # pyrefly: ignore  # bad-argument-type
            vm = dataclasses.replace(record_from_fields(old, fields), name=new)
            p.multi()
            p.delete(self._key(old))
            p.srem(self.names_key, old)
            p.hset(self._key(new), mapping=record_to_fields(vm))
            p.sadd(self.names_key, new)
            return vm

        return self.r.transaction(
            _move,
            self.names_key,
            self._key(old),
            self._key(new),
            value_from_callable=True,
        )


def make_store(backend: str | None = None) -> VMStore:
    backend = (backend or settings.VM_STORE_BACKEND).lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "redis":
        return RedisStore(settings.REDIS_URL, settings.REDIS_PREFIX)
    if backend == "ini":
        return IniStore(settings.VM_DATABASE_PATH)
    raise ValueError(f"Unknown VM_STORE_BACKEND: {backend!r}")
