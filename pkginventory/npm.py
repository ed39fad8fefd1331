"""Scanner for npm lockfiles and installed node_modules package.json files."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from pkginventory.record import ECOSYSTEM_NPM, BaseScanner, Record, normalize_npm

ECOSYSTEM = ECOSYSTEM_NPM

_LOCKFILE_NAMES = frozenset({"package-lock.json", "npm-shrinkwrap.json", ".package-lock.json"})

# Only the lifecycle scripts npm actually runs on install, in this order.
_LIFECYCLE_SCRIPTS = ("preinstall", "install", "postinstall", "prepare", "preprepare", "postprepare")


def is_lockfile(base: str) -> bool:
    """True when the basename is an npm lockfile."""
    return base in _LOCKFILE_NAMES


def is_node_modules_package_json(path: str) -> Optional[str]:
    """Return the project path for a node_modules/<pkg>/package.json path, else None.

    Accepts ``node_modules/<pkg>/package.json`` and
    ``node_modules/@scope/<pkg>/package.json``, using the last node_modules
    segment so nested installs map to the nearest project.
    """
    if os.path.basename(path) != "package.json":
        return None
    parts = path.replace(os.sep, "/").split("/")
    if len(parts) < 3:
        return None
    try:
        nm_index = len(parts) - 1 - parts[::-1].index("node_modules")
    except ValueError:
        return None
    tail = parts[nm_index + 1 :]
    if len(tail) == 2:
        if tail[0].startswith("@"):
            return None
    elif len(tail) == 3:
        if not tail[0].startswith("@"):
            return None
    else:
        return None
    return "/".join(parts[:nm_index]) or "."


def name_from_packages_key(key: str, explicit: str) -> str:
    """Package name from a v2/v3 ``packages`` key such as ``node_modules/@s/p``."""
    if explicit:
        return explicit
    parts = key.split("node_modules/")
    if len(parts) < 2:
        return ""
    tail = parts[-1].removesuffix("/")
    if tail.startswith("@"):
        segments = tail.split("/", 2)
        if len(segments) < 2:
            return ""
        return f"{segments[0]}/{segments[1]}"
    return tail.split("/", 1)[0]


def is_direct_from_key(key: str) -> bool:
    """A top-level dependency has exactly one ``node_modules/`` segment."""
    return key.count("node_modules/") == 1


def lifecycle_script_keys(scripts: Optional[dict[str, str]]) -> list[str]:
    """Names of the non-blank install lifecycle scripts present in ``scripts``."""
    if not scripts:
        return []
    return [name for name in _LIFECYCLE_SCRIPTS if name in scripts and scripts[name].strip()]


def _get(obj: dict[str, Any], key: str, kind: type) -> Any:
    """Fetch a typed field, treating null as absent and rejecting wrong types."""
    value = obj.get(key)
    if value is None:
        return None
    if kind is bool:
        ok = isinstance(value, bool)
    elif kind is int:
        ok = (isinstance(value, int) and not isinstance(value, bool)) or (
            isinstance(value, float) and value.is_integer()
        )
    else:
        ok = isinstance(value, kind)
    if not ok:
        raise ValueError(f"field {key!r}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def _string_map(obj: dict[str, Any], key: str) -> dict[str, str]:
    mapping = _get(obj, key, dict) or {}
    for name, value in mapping.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"field {key!r}.{name!r}: expected str")
    return {name: value or "" for name, value in mapping.items()}


def _object(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{where}: expected object")
    return value


@dataclass
class _LockEntry:
    version: str = ""
    name: str = ""
    dev: bool = False
    link: bool = False
    scripts: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, raw: Any, where: str) -> "_LockEntry":
        obj = _object(raw, where)
        _get(obj, "optional", bool)
        return cls(
            version=_get(obj, "version", str) or "",
            name=_get(obj, "name", str) or "",
            dev=bool(_get(obj, "dev", bool)),
            link=bool(_get(obj, "link", bool)),
            scripts=_string_map(obj, "scripts"),
        )


@dataclass
class _DepV1:
    version: str = ""
    dev: bool = False
    dependencies: dict[str, "_DepV1"] = field(default_factory=dict)

    @classmethod
    def load(cls, raw: Any, where: str) -> "_DepV1":
        obj = _object(raw, where)
        _get(obj, "optional", bool)
        _string_map(obj, "requires")
        nested = _get(obj, "dependencies", dict) or {}
        return cls(
            version=_get(obj, "version", str) or "",
            dev=bool(_get(obj, "dev", bool)),
            dependencies={name: cls.load(value, name) for name, value in nested.items()},
        )


def _load_lockfile(data: bytes) -> tuple[dict[str, _LockEntry], dict[str, _DepV1]]:
    doc = _object(json.loads(data), "lockfile")
    _get(doc, "lockfileVersion", int)
    packages = _get(doc, "packages", dict) or {}
    dependencies = _get(doc, "dependencies", dict) or {}
    return (
        {key: _LockEntry.load(value, key) for key, value in packages.items()},
        {key: _DepV1.load(value, key) for key, value in dependencies.items()},
    )


class NpmScanner(BaseScanner):
    """Emits npm records from lockfiles and installed package.json files."""

    def scan_lockfile(self, path: str, base: Record) -> None:
        """Parse a package-lock.json / npm-shrinkwrap.json and emit one record per package."""
        data = self.read_bounded(path)
        try:
            packages, dependencies = _load_lockfile(data)
        except ValueError as exc:
            raise ValueError(f"parse {path}: {exc}") from exc
        project_path = os.path.dirname(path)

        if packages:
            for key in sorted(packages):
                entry = packages[key]
                if key == "" or entry.link:
                    continue
                name = name_from_packages_key(key, entry.name)
                if not name or not entry.version:
                    continue
                scripts = lifecycle_script_keys(entry.scripts)
                self.emit(
                    replace(
                        base,
                        ecosystem=ECOSYSTEM,
                        package_name=name,
                        normalized_name=normalize_npm(name),
                        version=entry.version,
                        project_path=project_path,
                        package_manager="npm",
                        source_type="npm-lockfile",
                        source_file=path,
                        direct_dependency=is_direct_from_key(key),
                        has_lifecycle_scripts=bool(scripts),
                        lifecycle_scripts=scripts,
                        install_scope="dev" if entry.dev else "prod",
                        confidence="high",
                    )
                )
        elif dependencies:
            self._emit_deps_v1(dependencies, path, project_path, True, base)

    def _emit_deps_v1(
        self,
        deps: dict[str, _DepV1],
        path: str,
        project_path: str,
        direct: bool,
        base: Record,
    ) -> None:
        for name in sorted(deps):
            dep = deps[name]
            if not name or not dep.version:
                continue
            self.emit(
                replace(
                    base,
                    ecosystem=ECOSYSTEM,
                    package_name=name,
                    normalized_name=normalize_npm(name),
                    version=dep.version,
                    project_path=project_path,
                    package_manager="npm",
                    source_type="npm-lockfile",
                    source_file=path,
                    direct_dependency=direct,
                    install_scope="dev" if dep.dev else "prod",
                    confidence="high",
                )
            )
            if dep.dependencies:
                self._emit_deps_v1(dep.dependencies, path, project_path, False, base)

    def scan_node_modules_package_json(self, path: str, project_path: str, base: Record) -> None:
        """Emit a record for one installed package's package.json."""
        data = self.read_bounded(path)
        try:
            doc = _object(json.loads(data), "package.json")
            name = _get(doc, "name", str) or ""
            version = _get(doc, "version", str) or ""
            raw_scripts = _string_map(doc, "scripts")
        except ValueError as exc:
            raise ValueError(f"parse {path}: {exc}") from exc
        if not name or not version:
            raise ValueError(f"incomplete package.json at {path}")
        scripts = lifecycle_script_keys(raw_scripts)
        self.emit(
            replace(
                base,
                ecosystem=ECOSYSTEM,
                package_name=name,
                normalized_name=normalize_npm(name),
                version=version,
                project_path=project_path,
                package_manager="npm",
                source_type="npm-node_modules",
                source_file=path,
                has_lifecycle_scripts=bool(scripts),
                lifecycle_scripts=scripts,
                confidence="medium",
            )
        )