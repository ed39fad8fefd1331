import os

import pytest

from pkginventory.pypi import (
    PypiScanner,
    is_dist_info_metadata,
    is_egg_info_pkg_info,
    parse_rfc822_name_version,
)
from pkginventory.record import FileTooLargeError, Record


def _write(path, body):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)


def _collector(max_file_size=5 * 1024 * 1024):
    records = []
    diags = []
    scanner = PypiScanner(
        emit=records.append,
        max_file_size=max_file_size,
        diag=lambda level, path, msg: diags.append(f"{level}:{msg}"),
    )
    return scanner, records, diags


def test_scan_dist_info_with_direct_url_and_installer(tmp_path):
    dist = tmp_path / "site-packages" / "Flask-3.0.0.dist-info"
    _write(
        dist / "METADATA",
        """Metadata-Version: 2.1
Name: Flask
Version: 3.0.0
Summary: A simple framework
Author-email: someone@example.com

This is the long description.
Name: NotAName
Version: 9.9.9
""",
    )
    _write(dist / "INSTALLER", "pip\n")
    _write(dist / "direct_url.json", '{"url":"https://files.pythonhosted.org/x.whl","archive_info":{}}')

    metadata = str(dist / "METADATA")
    assert is_dist_info_metadata(metadata) == str(dist)
    scanner, records, _ = _collector()
    scanner.scan_dist_info(metadata, str(dist), Record())
    assert len(records) == 1
    record = records[0]
    assert record.package_name == "Flask"
    assert record.normalized_name == "flask"
    assert record.version == "3.0.0"
    assert record.package_manager == "pip"
    assert record.direct_dependency is True
    assert record.source_type == "pypi-dist-info"
    assert record.confidence == "high"
    assert record.project_path == str(tmp_path / "site-packages")


def test_scan_dist_info_without_sidecars(tmp_path):
    dist = tmp_path / "site-packages" / "six-1.16.0.dist-info"
    _write(dist / "METADATA", "Name: six\nVersion: 1.16.0\n")
    _write(dist / "INSTALLER", "\n")
    _write(dist / "direct_url.json", '{"url": ""}')
    scanner, records, _ = _collector()
    scanner.scan_dist_info(str(dist / "METADATA"), str(dist), Record())
    assert len(records) == 1
    assert records[0].package_manager == ""
    assert records[0].direct_dependency is None


def test_scan_egg_info(tmp_path):
    egg = tmp_path / "site-packages" / "Old-1.2.egg-info"
    _write(
        egg / "PKG-INFO",
        """Metadata-Version: 1.0
Name: Old_Package.Name
Version: 1.2

""",
    )
    pkg_info = str(egg / "PKG-INFO")
    assert is_egg_info_pkg_info(pkg_info) == str(egg)
    scanner, records, _ = _collector()
    scanner.scan_egg_info(pkg_info, str(egg), Record())
    assert len(records) == 1
    record = records[0]
    assert record.normalized_name == "old-package-name"
    assert record.source_type == "pypi-egg-info"
    assert record.confidence == "medium"


def test_malformed_metadata(tmp_path):
    dist = tmp_path / "broken.dist-info"
    _write(dist / "METADATA", "no headers here\njust junk\n")
    scanner, records, diags = _collector()
    scanner.scan_dist_info(str(dist / "METADATA"), str(dist), Record())
    assert records == []
    assert len(diags) == 1
    assert diags[0].startswith("warn:")


def test_malformed_pkg_info(tmp_path):
    egg = tmp_path / "broken.egg-info"
    _write(egg / "PKG-INFO", "no headers\n")
    scanner, records, diags = _collector()
    scanner.scan_egg_info(str(egg / "PKG-INFO"), str(egg), Record())
    assert records == []
    assert len(diags) == 1
    assert diags[0].startswith("warn:")


def test_max_file_size_skip(tmp_path):
    dist = tmp_path / "big.dist-info"
    _write(dist / "METADATA", "Name: big\nVersion: 1\n\n")
    scanner, records, _ = _collector(max_file_size=2)
    with pytest.raises(FileTooLargeError):
        scanner.scan_dist_info(str(dist / "METADATA"), str(dist), Record())
    assert records == []


def test_is_dist_info_metadata_rejects_other_shapes():
    assert is_dist_info_metadata(os.path.join("x", "pkg.egg-info", "METADATA")) is None
    assert is_dist_info_metadata(os.path.join("x", "pkg.dist-info", "RECORD")) is None


def test_is_egg_info_pkg_info_rejects_other_shapes():
    assert is_egg_info_pkg_info(os.path.join("x", "pkg.dist-info", "PKG-INFO")) is None
    assert is_egg_info_pkg_info(os.path.join("x", "pkg.egg-info", "METADATA")) is None


def test_parse_rfc822_stops_at_blank_line():
    data = b"Name: Flask\n\nVersion: 3.0.0\n"
    assert parse_rfc822_name_version(data) == ("Flask", "")


def test_parse_rfc822_skips_continuations_and_keeps_first():
    data = b"Summary: x\n  Name: Fake\nname: Flask\r\nVERSION: 3.0.0\r\nName: Other\n"
    assert parse_rfc822_name_version(data) == ("Flask", "3.0.0")


def test_parse_rfc822_last_line_without_newline():
    assert parse_rfc822_name_version(b"Name: big\nVersion: 1") == ("big", "1")
    assert parse_rfc822_name_version(b"") == ("", "")