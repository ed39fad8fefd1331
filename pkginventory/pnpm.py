"""Scanner for pnpm lockfiles and the node_modules/.pnpm store layout.

The lockfile reader is a line scanner rather than a YAML parser. It reads
the top-level ``packages:`` block of pnpm-lock.yaml (v5, v6 and v9 layouts)
and the root importer's direct dependencies, without running pnpm.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional

from pkginventory.record import ECOSYSTEM_NPM, BaseScanner, Record, normalize_npm

# pnpm installs npm-registry packages, so records keep ecosystem=npm.
ECOSYSTEM = ECOSYSTEM_NPM

_DEP_HEADERS = frozenset(
    {
        "dependencies:",
        "devDependencies:",
        "optionalDependencies:",
        "peerDependencies:",
    }
)

_DRIFT_MESSAGE = "unexpected pnpm-lock indent in packages block"


@dataclass
class PnpmEntry:
    """One entry of the lockfile's ``packages:`` block."""

    name: str = ""
    version: str = ""
    integrity: str = ""
    tarball: str = ""
    dev: bool = False
    has_scripts: bool = False


def is_lockfile(base: str) -> bool:
    """True when the basename is the pnpm lockfile."""
    return base == "pnpm-lock.yaml"


def is_pnpm_store_package_json(path: str) -> Optional[tuple[str, str, str]]:
    """Recognise ``node_modules/.pnpm/<dir>/node_modules/<pkg>/package.json``.

    Returns ``(project_path, name, version)`` or None. The project path is
    the directory holding the top-level node_modules, or "." when the path
    has no parent segments.
    """
    if os.path.basename(path) != "package.json":
        return None
    parts = path.replace(os.sep, "/").split("/")
    pnpm_index = next(
        (
            i
            for i in range(len(parts) - 1, 0, -1)
            if parts[i] == ".pnpm" and parts[i - 1] == "node_modules"
        ),
        -1,
    )
    if pnpm_index < 0 or pnpm_index + 4 >= len(parts):
        return None
    store_dir = parts[pnpm_index + 1]
    if parts[pnpm_index + 2] != "node_modules":
        return None
    tail = parts[pnpm_index + 3 :]
    if len(tail) == 2:
        if tail[0].startswith("@"):
            return None
        name = tail[0]
    elif len(tail) == 3:
        if not tail[0].startswith("@"):
            return None
        name = f"{tail[0]}/{tail[1]}"
    else:
        return None
    # The name is taken from the on-disk directory; only the version comes
    # from the store directory name.
    _, version = split_pnpm_store_dir(store_dir)
    project_path = "/".join(parts[: pnpm_index - 1]) or "."
    return project_path, name, version


def split_pnpm_store_dir(directory: str) -> tuple[str, str]:
    """Split a store directory name such as ``@scope+pkg@1.2.3_peer@4.5.6``.

    The version separator is the first '@' (after the leading scope marker,
    if any); a peer-id suffix starting at '_' is cut from the version only,
    since package names may themselves contain '_'.
    """
    if not directory:
        return "", ""
    search_from = 1 if directory.startswith("@") else 0
    at = directory.find("@", search_from)
    if at < 0:
        return "", ""
    raw_name = directory[:at]
    version = directory[at + 1 :].split("_", 1)[0]
    if raw_name.startswith("@"):
        raw_name = raw_name.replace("+", "/", 1)
    return raw_name, version


def looks_like_version(value: str) -> bool:
    """True when the value starts with a digit or a 'v'/'V' prefix."""
    if not value:
        return False
    first = value[0]
    return "0" <= first <= "9" or first in "vV"


def strip_peer_suffix(value: str) -> str:
    """Drop a pnpm peer-id annotation: ``1.2.3(react@18)`` or ``1.2.3_react@18``."""
    return value.split("(", 1)[0].split("_", 1)[0]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _split_top_level_commas(body: str) -> list[str]:
    fields: list[str] = []
    depth = 0
    quote = ""
    start = 0
    for i, char in enumerate(body):
        if quote:
            if char == quote:
                quote = ""
            continue
        if char in "'\"":
            quote = char
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
        elif char == "," and depth == 0:
            fields.append(body[start:i])
            start = i + 1
    fields.append(body[start:])
    return fields


def _key_separator(field: str) -> int:
    quote = ""
    for i, char in enumerate(field):
        if quote:
            if char == quote:
                quote = ""
            continue
        if char in "'\"":
            quote = char
            continue
        if char == ":":
            return i
    return -1


def parse_flow_map(body: str) -> dict[str, str]:
    """Parse a flat YAML flow-mapping body like ``integrity: x, tarball: y``.

    Commas and colons inside quotes are not treated as separators. Nested
    flow maps and arrays are not decoded.
    """
    out: dict[str, str] = {}
    for raw_field in _split_top_level_commas(body):
        field = raw_field.strip()
        if not field:
            continue
        sep = _key_separator(field)
        if sep <= 0:
            continue
        out[_unquote(field[:sep])] = _unquote(field[sep + 1 :])
    return out


def _lines(data: bytes) -> Iterator[str]:
    text = data.decode("utf-8", errors="replace")
    pieces = text.split("\n")
    if pieces and pieces[-1] == "":
        pieces.pop()
    for piece in pieces:
        yield piece[:-1] if piece.endswith("\r") else piece


def _leading_spaces(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def split_pnpm_lock_key(key: str) -> tuple[str, str]:
    """Extract ``(name, version)`` from a ``packages:`` key.

    Handles ``/foo@1.2.3``, ``/foo@1.2.3(peer@x)``, ``@scope/foo@1.2.3`` (v9)
    and the legacy v5 ``/foo/1.2.3`` and ``/@scope/foo/1.2.3`` forms.
    """
    if not key:
        return "", ""
    key = key.removeprefix("/")
    key = key.split("(", 1)[0]
    at = key.rfind("@")
    if at > 0 and looks_like_version(key[at + 1 :]):
        return key[:at], key[at + 1 :]
    if key.startswith("@"):
        parts = key.split("/", 2)
        if len(parts) == 3:
            return f"{parts[0]}/{parts[1]}", parts[2]
    else:
        slash = key.rfind("/")
        if slash > 0:
            return key[:slash], key[slash + 1 :]
    return "", ""


def _is_indent_drift(line: str) -> bool:
    if line.lstrip(" \t").startswith("#"):
        return False
    if line.startswith("\t"):
        return True
    spaces = _leading_spaces(line)
    return 0 < spaces < 4 and spaces != 2


def _apply_nested_field(entry: PnpmEntry, trim: str) -> None:
    if trim.startswith("resolution:"):
        inline = trim[len("resolution:") :].strip()
        if inline.startswith("{") and inline.endswith("}"):
            for key, value in parse_flow_map(inline[1:-1]).items():
                if key == "integrity":
                    entry.integrity = value
                elif key == "tarball":
                    entry.tarball = value
    elif trim.startswith("integrity:"):
        entry.integrity = _unquote(trim[len("integrity:") :])
    elif trim.startswith("tarball:"):
        entry.tarball = _unquote(trim[len("tarball:") :])
    elif trim == "dev: true":
        entry.dev = True
    elif trim == "requiresBuild: true":
        entry.has_scripts = True
    elif trim.startswith("version:") and not entry.version:
        entry.version = _unquote(trim[len("version:") :])
    elif trim.startswith("name:") and not entry.name:
        entry.name = _unquote(trim[len("name:") :])


def parse_pnpm_packages(
    data: bytes, diag: Optional[Callable[[str, str], None]] = None
) -> list[PnpmEntry]:
    """Return every named, versioned entry of the top-level ``packages:`` block.

    Entry keys sit at exactly two spaces of indent and their fields at four
    or more. The first line with any other indent is reported once through
    ``diag(level, message)`` when a callback is given.
    """
    out: list[PnpmEntry] = []
    in_packages = False
    drift_warned = False
    current: Optional[PnpmEntry] = None

    def flush() -> None:
        nonlocal current
        if current is not None and current.name and current.version:
            out.append(current)
        current = None

    for line in _lines(data):
        if not in_packages:
            if line == "packages:":
                in_packages = True
            continue
        if line == "":
            continue
        if line[0] not in " \t" and not line.startswith("#"):
            flush()
            in_packages = False
            continue
        if not drift_warned and diag is not None and _is_indent_drift(line):
            diag("warn", _DRIFT_MESSAGE)
            drift_warned = True
        if line.startswith("  ") and not line.startswith("    "):
            trim = line.strip()
            if trim.endswith(":"):
                flush()
                key = trim[:-1].strip("'\"")
                name, version = split_pnpm_lock_key(key)
                current = PnpmEntry(name=name, version=version)
                continue
        if current is not None and line.startswith("    "):
            _apply_nested_field(current, line.strip())
    flush()
    return out


def _name_value(trim: str) -> Optional[tuple[str, str]]:
    colon = trim.find(":")
    if colon <= 0:
        return None
    return trim[:colon].strip().strip("'\""), _unquote(trim[colon + 1 :])


def parse_pnpm_importer_directs(data: bytes) -> set[tuple[str, str]]:
    """Collect ``(name, version)`` pairs declared directly by the root project.

    Reads the root importer (".") of the v6/v9 ``importers:`` block and the
    top-level dependency maps of the v5 layout. Workspace importers are
    skipped; peer suffixes are stripped and values that do not look like a
    concrete version are ignored.
    """
    out: set[tuple[str, str]] = set()

    def record(name: str, value: str) -> None:
        value = strip_peer_suffix(value)
        if name and value and looks_like_version(value):
            out.add((name, value))

    in_importers = False
    in_root_importer = False
    in_dep_section = False
    in_v5_dep_section = False
    current_name = ""

    for line in _lines(data):
        if not line.strip() or line.lstrip(" \t").startswith("#"):
            continue
        indent = _leading_spaces(line)
        trim = line.strip()

        if indent == 0:
            in_importers = trim == "importers:"
            in_v5_dep_section = trim in _DEP_HEADERS
            in_root_importer = False
            in_dep_section = False
            current_name = ""
            continue

        if in_v5_dep_section:
            if indent != 2:
                in_v5_dep_section = False
                continue
            pair = _name_value(trim)
            if pair is not None:
                record(*pair)
            continue

        if not in_importers:
            continue

        if indent == 2:
            if not trim.endswith(":"):
                continue
            in_root_importer = trim[:-1].strip("'\"") == "."
            in_dep_section = False
            current_name = ""
            continue

        if not in_root_importer:
            continue

        if indent == 4:
            in_dep_section = trim in _DEP_HEADERS
            current_name = ""
            continue

        if not in_dep_section:
            continue

        if indent == 6:
            if trim.endswith(":"):
                current_name = trim[:-1].strip("'\"")
                continue
            pair = _name_value(trim)
            if pair is not None:
                record(*pair)
                current_name = ""
            continue

        if indent >= 8 and current_name and trim.startswith("version:"):
            record(current_name, _unquote(trim[len("version:") :]))
    return out


class PnpmScanner(BaseScanner):
    """Emits npm-ecosystem records from pnpm lockfiles and store layouts."""

    def scan_lockfile(self, path: str, base: Record) -> None:
        """Parse a pnpm-lock.yaml and emit one record per package entry."""
        data = self.read_bounded(path)
        project_path = os.path.dirname(path)

        def diag(level: str, message: str) -> None:
            self.diagnose(level, path, message)

        entries = parse_pnpm_packages(data, diag)
        directs = parse_pnpm_importer_directs(data)

        for entry in entries:
            if not entry.name or not entry.version:
                continue
            # requiresBuild only says some install hook exists, so the flag
            # is set while the hook-name list stays empty.
            record = replace(
                base,
                ecosystem=ECOSYSTEM,
                package_name=entry.name,
                normalized_name=normalize_npm(entry.name),
                version=entry.version,
                project_path=project_path,
                package_manager="pnpm",
                source_type="pnpm-lockfile",
                source_file=path,
                install_scope="dev" if entry.dev else "prod",
                has_lifecycle_scripts=entry.has_scripts,
                confidence="high",
            )
            # Only claim direct/transitive when the root importer gave evidence.
            if directs:
                record.direct_dependency = (entry.name, entry.version) in directs
            self.emit(record)

    def scan_store_package_json(
        self, path: str, project_path: str, name: str, version: str, base: Record
    ) -> None:
        """Emit a record for a package.json inside the pnpm store layout.

        The file is only read to confirm it is a readable regular file within
        the size cap; name and version come from the store directory.
        """
        self.read_bounded(path)
        self.emit(
            replace(
                base,
                ecosystem=ECOSYSTEM,
                package_name=name,
                normalized_name=normalize_npm(name),
                version=version,
                project_path=project_path,
                package_manager="pnpm",
                source_type="pnpm-node_modules",
                source_file=path,
                confidence="medium",
            )
        )