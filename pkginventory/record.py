"""Inventory record model and the bounded-read scanner base shared by ecosystems."""

from __future__ import annotations

import os
import re
import stat
from dataclasses import dataclass, field
from typing import Callable, Optional

ECOSYSTEM_NPM = "npm"
ECOSYSTEM_PYPI = "pypi"
ECOSYSTEM_RUBYGEMS = "rubygems"
ECOSYSTEM_MCP = "mcp"

ROOT_KIND_MCP_CONFIG = "mcp-config"

DiagFn = Callable[[str, str, str], None]


@dataclass
class Record:
    """One inventoried package occurrence."""

    ecosystem: str = ""
    package_name: str = ""
    normalized_name: str = ""
    version: str = ""
    project_path: str = ""
    package_manager: str = ""
    source_type: str = ""
    source_file: str = ""
    direct_dependency: Optional[bool] = None
    has_lifecycle_scripts: bool = False
    lifecycle_scripts: list[str] = field(default_factory=list)
    install_scope: str = ""
    confidence: str = ""
    root_kind: str = ""
    server_name: str = ""
    requested_spec: str = ""


class FileTooLargeError(ValueError):
    """Raised when a file is larger than the scanner's size cap."""

    def __init__(self, path: str, size: int, limit: int) -> None:
        super().__init__(f"file {path} exceeds max size {limit}")
        self.path = path
        self.size = size
        self.limit = limit


_PYPI_SEPARATORS = re.compile(r"[-_.]+")


def normalize_npm(name: str) -> str:
    """Canonical form of an npm package name."""
    return name.strip().lower()


def normalize_pypi(name: str) -> str:
    """Canonical form of a PyPI project name: runs of -, _ and . become one -."""
    return _PYPI_SEPARATORS.sub("-", name.strip()).lower()


@dataclass
class BaseScanner:
    """Holds the emit/diagnostic callbacks and the per-file size cap."""

    emit: Callable[[Record], None]
    max_file_size: int = 0
    diag: Optional[DiagFn] = None

    def diagnose(self, level: str, path: str, message: str) -> None:
        """Forward a diagnostic to the callback, if one is set."""
        if self.diag is not None:
            self.diag(level, path, message)

    def read_bounded(self, path: str) -> bytes:
        """Read a regular file whole, refusing files above the size cap."""
        with open(path, "rb") as handle:
            info = os.fstat(handle.fileno())
            if not stat.S_ISREG(info.st_mode):
                raise OSError(f"not a regular file: {path}")
            if self.max_file_size > 0 and info.st_size > self.max_file_size:
                self.diagnose(
                    "warn",
                    path,
                    f"skipping: size {info.st_size} exceeds max {self.max_file_size}",
                )
                raise FileTooLargeError(path, info.st_size, self.max_file_size)
            return handle.read()

    def read_optional(self, path: str) -> Optional[bytes]:
        """Read a file if it exists, is regular and fits the cap; otherwise None."""
        try:
            info = os.stat(path)
        except OSError:
            return None
        if not stat.S_ISREG(info.st_mode):
            return None
        if self.max_file_size > 0 and info.st_size > self.max_file_size:
            return None
        try:
            with open(path, "rb") as handle:
                return handle.read()
        except OSError:
            return None