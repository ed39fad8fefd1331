"""Scanner for installed Python distributions (*.dist-info and *.egg-info)."""

from __future__ import annotations

import json
import os
from dataclasses import replace
from typing import Optional

from pkginventory.record import ECOSYSTEM_PYPI, BaseScanner, Record, normalize_pypi

ECOSYSTEM = ECOSYSTEM_PYPI


def is_dist_info_metadata(path: str) -> Optional[str]:
    """Return the *.dist-info directory when path is its METADATA file, else None."""
    if os.path.basename(path) != "METADATA":
        return None
    directory = os.path.dirname(path)
    return directory if directory.endswith(".dist-info") else None


def is_egg_info_pkg_info(path: str) -> Optional[str]:
    """Return the *.egg-info directory when path is its PKG-INFO file, else None."""
    if os.path.basename(path) != "PKG-INFO":
        return None
    directory = os.path.dirname(path)
    return directory if directory.endswith(".egg-info") else None


def parse_rfc822_name_version(data: bytes) -> tuple[str, str]:
    """Read Name and Version from the header block, stopping at the first blank line."""
    name = ""
    version = ""
    for raw in data.decode("utf-8", errors="replace").split("\n"):
        line = raw.rstrip("\r\n")
        if not line:
            break
        if line[0] in " \t":
            continue
        key, sep, value = line.partition(":")
        if sep and key:
            field = key.strip().lower()
            if field == "name" and not name:
                name = value.strip()
            elif field == "version" and not version:
                version = value.strip()
        if name and version:
            break
    return name, version


class PypiScanner(BaseScanner):
    """Emits PyPI records from installed distribution metadata."""

    def _installer(self, meta_dir: str) -> str:
        content = self.read_optional(os.path.join(meta_dir, "INSTALLER"))
        if content is None:
            return ""
        return content.decode("utf-8", errors="replace").strip()

    def _has_direct_url(self, dist_info_dir: str) -> bool:
        content = self.read_optional(os.path.join(dist_info_dir, "direct_url.json"))
        if content is None:
            return False
        try:
            doc = json.loads(content)
        except ValueError:
            return False
        if not isinstance(doc, dict):
            return False
        url = doc.get("url")
        return isinstance(url, str) and url != ""

    def scan_dist_info(self, metadata_path: str, dist_info_dir: str, base: Record) -> None:
        """Emit a record for a *.dist-info/METADATA file."""
        name, version = parse_rfc822_name_version(self.read_bounded(metadata_path))
        if not name or not version:
            self.diagnose("warn", metadata_path, "skipping: METADATA missing Name and/or Version header")
            return
        record = replace(
            base,
            ecosystem=ECOSYSTEM,
            package_name=name,
            normalized_name=normalize_pypi(name),
            version=version,
            project_path=os.path.dirname(dist_info_dir),
            source_type="pypi-dist-info",
            source_file=metadata_path,
            confidence="high",
        )
        installer = self._installer(dist_info_dir)
        if installer:
            record.package_manager = installer
        if self._has_direct_url(dist_info_dir):
            record.direct_dependency = True
        self.emit(record)

    def scan_egg_info(self, pkg_info_path: str, egg_info_dir: str, base: Record) -> None:
        """Emit a record for a legacy *.egg-info/PKG-INFO file."""
        name, version = parse_rfc822_name_version(self.read_bounded(pkg_info_path))
        if not name or not version:
            self.diagnose("warn", pkg_info_path, "skipping: PKG-INFO missing Name and/or Version header")
            return
        record = replace(
            base,
            ecosystem=ECOSYSTEM,
            package_name=name,
            normalized_name=normalize_pypi(name),
            version=version,
            project_path=os.path.dirname(egg_info_dir),
            source_type="pypi-egg-info",
            source_file=pkg_info_path,
            confidence="medium",
        )
        installer = self._installer(egg_info_dir)
        if installer:
            record.package_manager = installer
        self.emit(record)