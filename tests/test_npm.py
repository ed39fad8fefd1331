import pytest

from pkginventory.npm import (
    NpmScanner,
    is_direct_from_key,
    is_lockfile,
    is_node_modules_package_json,
    lifecycle_script_keys,
    name_from_packages_key,
)
from pkginventory.record import FileTooLargeError, Record


def _collector(max_file_size=5 * 1024 * 1024):
    records = []
    diags = []
    scanner = NpmScanner(
        emit=records.append,
        max_file_size=max_file_size,
        diag=lambda level, path, msg: diags.append(f"{level}:{path}:{msg}"),
    )
    return scanner, records, diags


def _write(path, body):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)


LOCK_V3 = """{
  "name": "demo",
  "version": "1.0.0",
  "lockfileVersion": 3,
  "packages": {
    "": { "name": "demo", "version": "1.0.0" },
    "node_modules/lodash": {
      "version": "4.17.21",
      "resolved": "https://registry.npmjs.org/lodash/-/lodash-4.17.21.tgz",
      "integrity": "sha512-abc"
    },
    "node_modules/@tanstack/query-core": {
      "version": "5.0.0",
      "resolved": "https://registry.npmjs.org/@tanstack/query-core/-/query-core-5.0.0.tgz",
      "integrity": "sha512-xyz",
      "dev": true
    },
    "node_modules/@tanstack/query-core/node_modules/lodash": {
      "version": "4.17.20"
    }
  }
}"""


def test_scan_lockfile_v3_scoped_and_unscoped(tmp_path):
    lock = tmp_path / "package-lock.json"
    _write(lock, LOCK_V3)
    scanner, records, _ = _collector()
    scanner.scan_lockfile(str(lock), Record())
    by_key = {f"{r.normalized_name}@{r.version}": r for r in records}
    assert len(records) == 3

    lodash = by_key["lodash@4.17.21"]
    assert lodash.direct_dependency is True
    assert lodash.package_name == "lodash"
    assert lodash.normalized_name == "lodash"
    assert lodash.source_type == "npm-lockfile"
    assert lodash.confidence == "high"
    assert lodash.project_path == str(tmp_path)

    tanstack = by_key["@tanstack/query-core@5.0.0"]
    assert tanstack.install_scope == "dev"
    assert tanstack.normalized_name == "@tanstack/query-core"

    nested = by_key["lodash@4.17.20"]
    assert nested.direct_dependency is False
    assert nested.install_scope == "prod"


def test_scan_lockfile_v1(tmp_path):
    lock = tmp_path / "npm-shrinkwrap.json"
    _write(
        lock,
        """{
  "name": "demo",
  "version": "1.0.0",
  "lockfileVersion": 1,
  "dependencies": {
    "react": {
      "version": "18.2.0",
      "resolved": "https://registry.npmjs.org/react/-/react-18.2.0.tgz",
      "integrity": "sha512-rrr",
      "requires": { "loose-envify": "^1.1.0" },
      "dependencies": {
        "loose-envify": { "version": "1.4.0" }
      }
    }
  }
}""",
    )
    scanner, records, _ = _collector()
    scanner.scan_lockfile(str(lock), Record())
    have = sorted(f"{r.normalized_name}@{r.version}" for r in records)
    assert have == ["loose-envify@1.4.0", "react@18.2.0"]
    direct = {r.package_name: r.direct_dependency for r in records}
    assert direct == {"react": True, "loose-envify": False}


def test_scan_lockfile_skips_links_and_keeps_base_fields(tmp_path):
    lock = tmp_path / "package-lock.json"
    _write(
        lock,
        """{"lockfileVersion": 3, "packages": {
  "node_modules/ws-link": {"version": "1.0.0", "link": true},
  "node_modules/evil": {"version": "0.1.0", "scripts": {"postinstall": "x", "test": "y"}}
}}""",
    )
    scanner, records, _ = _collector()
    scanner.scan_lockfile(str(lock), Record(server_name="keep"))
    assert [r.package_name for r in records] == ["evil"]
    assert records[0].server_name == "keep"
    assert records[0].lifecycle_scripts == ["postinstall"]
    assert records[0].has_lifecycle_scripts is True


def test_scan_node_modules_package_json_lifecycle_scripts(tmp_path):
    pj = tmp_path / "node_modules" / "evil" / "package.json"
    _write(
        pj,
        """{
  "name": "evil",
  "version": "0.1.0",
  "scripts": {
    "preinstall": "node ./bad.js",
    "test": "jest"
  },
  "_resolved": "https://registry.npmjs.org/evil/-/evil-0.1.0.tgz",
  "_integrity": "sha512-xx"
}""",
    )
    project = is_node_modules_package_json(str(pj))
    assert project == str(tmp_path)
    scanner, records, _ = _collector()
    scanner.scan_node_modules_package_json(str(pj), project, Record())
    assert len(records) == 1
    record = records[0]
    assert record.has_lifecycle_scripts is True
    assert record.lifecycle_scripts == ["preinstall"]
    assert record.source_type == "npm-node_modules"
    assert record.confidence == "medium"


def test_scan_node_modules_package_json_incomplete(tmp_path):
    pj = tmp_path / "node_modules" / "half" / "package.json"
    _write(pj, '{"name": "half"}')
    scanner, records, _ = _collector()
    with pytest.raises(ValueError, match="incomplete package.json"):
        scanner.scan_node_modules_package_json(str(pj), str(tmp_path), Record())
    assert records == []


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/home/u/proj/node_modules/foo/package.json", True),
        ("/home/u/proj/node_modules/@scope/pkg/package.json", True),
        ("/home/u/proj/node_modules/foo/node_modules/bar/package.json", True),
        ("/home/u/proj/node_modules/@scope/pkg/lib/package.json", False),
        ("/home/u/proj/package.json", False),
        ("/home/u/proj/node_modules/@scope/package.json", False),
    ],
)
def test_is_node_modules_package_json_shapes(path, expected):
    assert (is_node_modules_package_json(path) is not None) == expected


def test_is_node_modules_package_json_nearest_project():
    path = "/home/u/proj/node_modules/foo/node_modules/bar/package.json"
    assert is_node_modules_package_json(path) == "/home/u/proj/node_modules/foo"


def test_is_node_modules_package_json_relative_root():
    assert is_node_modules_package_json("node_modules/foo/package.json") == "."


def test_max_file_size_skip(tmp_path):
    lock = tmp_path / "package-lock.json"
    _write(lock, '{"lockfileVersion":3,"packages":{}}')
    scanner, records, diags = _collector(max_file_size=4)
    with pytest.raises(FileTooLargeError, match="exceeds max size"):
        scanner.scan_lockfile(str(lock), Record())
    assert records == []
    assert len(diags) == 1
    assert diags[0].startswith("warn:")


def test_malformed_lockfile(tmp_path):
    lock = tmp_path / "package-lock.json"
    _write(lock, "{not valid json")
    scanner, records, _ = _collector()
    with pytest.raises(ValueError, match="parse"):
        scanner.scan_lockfile(str(lock), Record())
    assert records == []


def test_lockfile_wrong_field_type_is_parse_error(tmp_path):
    lock = tmp_path / "package-lock.json"
    _write(lock, '{"packages": {"node_modules/a": {"version": 5}}}')
    scanner, records, _ = _collector()
    with pytest.raises(ValueError, match="parse"):
        scanner.scan_lockfile(str(lock), Record())
    assert records == []


def test_is_lockfile():
    assert is_lockfile("package-lock.json") is True
    assert is_lockfile("npm-shrinkwrap.json") is True
    assert is_lockfile(".package-lock.json") is True
    assert is_lockfile("package.json") is False


def test_name_from_packages_key():
    assert name_from_packages_key("node_modules/foo", "") == "foo"
    assert name_from_packages_key("node_modules/@scope/pkg/node_modules/bar", "") == "bar"
    assert name_from_packages_key("node_modules/@tanstack/query-core", "") == "@tanstack/query-core"
    assert name_from_packages_key("node_modules/foo", "explicit") == "explicit"
    assert name_from_packages_key("packages/inner", "") == ""


def test_is_direct_from_key():
    assert is_direct_from_key("node_modules/lodash") is True
    assert is_direct_from_key("node_modules/@tanstack/query-core/node_modules/lodash") is False


def test_lifecycle_script_keys_order_and_blank_values():
    scripts = {"postinstall": "b", "preinstall": "a", "install": "   ", "test": "jest"}
    assert lifecycle_script_keys(scripts) == ["preinstall", "postinstall"]
    assert lifecycle_script_keys({}) == []
    assert lifecycle_script_keys(None) == []