"""Scanner for Bundler lockfiles (Gemfile.lock) and installed gemspec files.

Gemfile.lock is read for the top-level ``name (version)`` lines of the
GEM/GIT/PATH ``specs:`` blocks; nested dependency lines are ignored so
transitive requirements are not counted as gems of their own. Gemspecs are
read with a plain text matcher, never evaluated as Ruby.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from typing import Optional

from pkginventory.record import ECOSYSTEM_RUBYGEMS, BaseScanner, Record

ECOSYSTEM = ECOSYSTEM_RUBYGEMS

_SECTION_HEADERS = frozenset(
    {
        "GEM",
        "GIT",
        "PATH",
        "PLATFORMS",
        "DEPENDENCIES",
        "RUBY VERSION",
        "BUNDLED WITH",
        "CHECKSUMS",
    }
)
_SPEC_SECTIONS = frozenset({"GEM", "GIT", "PATH"})
_RECOGNISED_ROOTS = frozenset({"bundler", "rubygems", ".bundle", "vendor", "cache"})

_GEM_SPEC_RE = re.compile(r"([A-Za-z0-9_.\-]+)\s*\(([^)]+)\)")
_GEMSPEC_NAME_RE = re.compile(
    r"^\s*\w+\.name\s*=\s*[\"']([^\"']+)[\"']", re.MULTILINE | re.ASCII
)
# Accepts both `s.version = "1.2.3"` and `s.version = Gem::Version.new("1.2.3")`.
_GEMSPEC_VERSION_RE = re.compile(
    r"^\s*\w+\.version\s*=\s*(?:Gem::Version\.new\(\s*)?[\"']([^\"']+)[\"']",
    re.MULTILINE | re.ASCII,
)


@dataclass(frozen=True)
class GemEntry:
    """A top-level gem listed in a Gemfile.lock specs block."""

    name: str
    version: str
    section: str


def is_gemfile_lock(base: str) -> bool:
    """True when the basename is a Bundler lockfile."""
    return base == "Gemfile.lock"


def is_gemspec(base: str) -> bool:
    """True when the basename ends in .gemspec."""
    return base.endswith(".gemspec")


def _parent(path: str) -> str:
    return os.path.dirname(path) or "."


def _looks_like_ruby_abi(value: str) -> bool:
    """True for names like "3.2.0": digits and dots with at least one digit."""
    if not value:
        return False
    if any(not (char.isascii() and (char.isdigit() or char == ".")) for char in value):
        return False
    return any(char.isdigit() for char in value)


def _is_installed_gem_root(directory: str) -> bool:
    if directory in ("", ".", "/"):
        return False
    if os.path.isdir(os.path.join(directory, "specifications")):
        return True
    base = os.path.basename(directory)
    if base in _RECOGNISED_ROOTS:
        return True
    parent = _parent(directory)
    # <root>/gems/<ruby_abi>/gems/<name>-<ver>/
    if os.path.basename(parent) == "gems" and _looks_like_ruby_abi(base):
        return True
    # vendor/bundle/ruby/<ver>/gems/...
    if os.path.basename(parent) == "ruby":
        if os.path.basename(_parent(parent)) in ("bundle", "vendor"):
            return True
    return False


def is_installed_gemspec(path: str) -> Optional[str]:
    """Return the owning directory when path is installed gem metadata, else None.

    Accepts ``specifications/<name>-<ver>.gemspec`` and
    ``gems/<name>-<ver>/<name>.gemspec`` when the directory above ``gems``
    looks like an installed-gems root.
    """
    if not is_gemspec(os.path.basename(path)):
        return None
    parent = _parent(path)
    parent_base = os.path.basename(parent)
    grandparent = _parent(parent)
    if parent_base == "specifications":
        return parent
    if os.path.basename(grandparent) != "gems" or "-" not in parent_base:
        return None
    stem = os.path.basename(path).removesuffix(".gemspec")
    dash = parent_base.rfind("-")
    if dash <= 0 or parent_base[:dash] != stem:
        return None
    if _is_installed_gem_root(_parent(grandparent)):
        return parent
    return None


def parse_gemfile_lock_spec(line: str) -> tuple[str, str]:
    """Split a trimmed ``name (version)`` line; ("", "") when it does not match."""
    match = _GEM_SPEC_RE.fullmatch(line)
    if match is None:
        return "", ""
    return match.group(1), match.group(2).strip()


def _text_lines(data: bytes) -> list[str]:
    text = data.decode("utf-8", errors="replace")
    pieces = text.split("\n")
    if pieces and pieces[-1] == "":
        pieces.pop()
    return [piece.removesuffix("\r") for piece in pieces]


def parse_gemfile_lock(data: bytes) -> list[GemEntry]:
    """Return the top-level gems of every GEM/GIT/PATH specs block, in file order."""
    out: list[GemEntry] = []
    section = ""
    in_specs = False
    for raw in _text_lines(data):
        trim = raw.strip()
        if not raw.startswith(" ") and trim:
            section = trim if trim in _SECTION_HEADERS else ""
            in_specs = False
            continue
        if section not in _SPEC_SECTIONS:
            continue
        if trim == "specs:":
            in_specs = True
            continue
        if not in_specs:
            continue
        if raw.startswith("    ") and not raw.startswith("      "):
            name, version = parse_gemfile_lock_spec(trim)
            if name and version:
                out.append(GemEntry(name=name, version=version, section=section))
    return out


def gemspec_name(text: str) -> str:
    """The string assigned to ``<x>.name`` in a gemspec, or ""."""
    match = _GEMSPEC_NAME_RE.search(text)
    return match.group(1) if match else ""


def gemspec_version(text: str) -> str:
    """The string assigned to ``<x>.version`` in a gemspec, or ""."""
    match = _GEMSPEC_VERSION_RE.search(text)
    return match.group(1) if match else ""


def _split_name_version(value: str) -> Optional[tuple[str, str]]:
    dash = value.rfind("-")
    if dash <= 0:
        return None
    return value[:dash], value[dash + 1 :]


class RubyGemsScanner(BaseScanner):
    """Emits RubyGems records from Gemfile.lock and gemspec files."""

    def scan_gemfile_lock(self, path: str, base: Record) -> None:
        """Emit one record per top-level gem in a Gemfile.lock."""
        data = self.read_bounded(path)
        project_path = os.path.dirname(path)
        for gem in parse_gemfile_lock(data):
            self.emit(
                replace(
                    base,
                    ecosystem=ECOSYSTEM,
                    package_name=gem.name,
                    normalized_name=gem.name.lower(),
                    version=gem.version,
                    project_path=project_path,
                    package_manager="bundler",
                    source_type="rubygems-gemfile-lock",
                    source_file=path,
                    confidence="high",
                )
            )

    def scan_gemspec(self, path: str, project_path: str, base: Record) -> None:
        """Emit a record for an installed gemspec.

        Name and version come from the gemspec text, falling back to the
        ``<name>-<version>`` parent directory under ``gems/`` and then to the
        ``<name>-<version>.gemspec`` filename. Raises ValueError when neither
        yields both fields.
        """
        text = self.read_bounded(path).decode("utf-8", errors="replace")
        name = gemspec_name(text)
        version = gemspec_version(text)

        if not name or not version:
            parent = _parent(path)
            split = _split_name_version(os.path.basename(parent))
            if split is not None and os.path.basename(_parent(parent)) == "gems":
                name = name or split[0]
                version = version or split[1]

        if not name or not version:
            split = _split_name_version(os.path.basename(path).removesuffix(".gemspec"))
            if split is not None:
                name = name or split[0]
                version = version or split[1]

        if not name or not version:
            raise ValueError(f"incomplete gemspec at {path}")

        self.emit(
            replace(
                base,
                ecosystem=ECOSYSTEM,
                package_name=name,
                normalized_name=name.lower(),
                version=version,
                project_path=project_path,
                package_manager="rubygems",
                source_type="rubygems-gemspec",
                source_file=path,
                confidence="medium",
            )
        )