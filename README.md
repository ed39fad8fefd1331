# pkginventory

Read-only scanners that inventory installed or configured packages from
files already on disk. Nothing is installed or executed: no package manager
and no MCP server is ever started. Each scanned file is read whole at most
once, and files above a configurable size are refused.

| Module                   | Reads                                                                                          |
|--------------------------|------------------------------------------------------------------------------------------------|
| `pkginventory.npm`       | `package-lock.json`, `npm-shrinkwrap.json`, `.package-lock.json`, `node_modules/<pkg>/package.json` |
| `pkginventory.pnpm`      | `pnpm-lock.yaml`, `node_modules/.pnpm/<name>@<ver>/node_modules/<name>/package.json`           |
| `pkginventory.pypi`      | `*.dist-info/METADATA` (with `INSTALLER` and `direct_url.json`), `*.egg-info/PKG-INFO`         |
| `pkginventory.rubygems`  | `Gemfile.lock`, installed `*.gemspec`                                                          |
| `pkginventory.mcp`       | MCP configs (`mcp.json`, `claude_desktop_config.json`, `.mcp.json`, `.gemini/settings.json`, `.claude.json`, ...) |
| `pkginventory.mcp_args`  | Helpers that infer a package spec from an MCP server's command and arguments                   |
| `pkginventory.record`    | The `Record` dataclass, `BaseScanner`, `FileTooLargeError`, name normalisers                   |

The package has no dependencies beyond the standard library.

## Installation

```
pip install pkginventory
```

## Usage

Every scanner (`NpmScanner`, `PnpmScanner`, `PypiScanner`,
`RubyGemsScanner`, `McpScanner`) is a dataclass taking an `emit` callback
that receives one `Record` per package, an optional `max_file_size`
(0 means no limit) and an optional `diag(level, path, message)` callback.

```python
from pkginventory.record import Record
from pkginventory.npm import NpmScanner

records = []
scanner = NpmScanner(
    emit=records.append,
    max_file_size=5 * 1024 * 1024,
    diag=lambda level, path, msg: print(level, path, msg),
)

scanner.scan_lockfile("project/package-lock.json", Record())
for r in records:
    print(r.normalized_name, r.version, r.direct_dependency, r.install_scope)
```

The `base` record passed to each scan is copied into every emitted record,
so fields shared by a whole scan can be set once.

### Recognising files

The `is_*` helpers tell which scan a path belongs to. Those that need more
than a yes/no return the extra data or `None`:

```python
from pkginventory.record import Record
from pkginventory.npm import NpmScanner, is_node_modules_package_json
from pkginventory.pnpm import PnpmScanner, is_pnpm_store_package_json
from pkginventory.pypi import PypiScanner, is_dist_info_metadata
from pkginventory.mcp import McpScanner, is_claude_config_json

records = []

path = "venv/lib/site-packages/Flask-3.0.0.dist-info/METADATA"
dist_info = is_dist_info_metadata(path)
if dist_info is not None:
    PypiScanner(emit=records.append).scan_dist_info(path, dist_info, Record())

path = "proj/node_modules/lodash/package.json"
project = is_node_modules_package_json(path)
if project is not None:
    NpmScanner(emit=records.append).scan_node_modules_package_json(path, project, Record())

path = "proj/node_modules/.pnpm/lodash@4.17.21/node_modules/lodash/package.json"
found = is_pnpm_store_package_json(path)
if found is not None:
    project, name, version = found
    PnpmScanner(emit=records.append).scan_store_package_json(
        path, project, name, version, Record()
    )

mcp = McpScanner(emit=records.append)
mcp.scan_config("mcp.json", Record())
if is_claude_config_json("home/.claude.json"):
    mcp.scan_claude_config("home/.claude.json", Record())
```

`pkginventory.rubygems` offers `is_gemfile_lock`, `is_gemspec` and
`is_installed_gemspec` (which returns the owning directory or `None`), and
`pkginventory.mcp` offers `is_known_mcp_config` and `is_gemini_settings_json`.

### Errors and diagnostics

A file larger than `max_file_size` emits a `warn` diagnostic and raises
`FileTooLargeError` (a `ValueError`). A missing or non-regular file raises
`OSError`. Malformed npm lockfiles and `package.json` files, and gemspecs
without a name and version, raise `ValueError`. Some incomplete input is
reported through `diag` instead of raising:

- `METADATA` / `PKG-INFO` without `Name` or `Version`: `warn`, nothing emitted;
- MCP configs that do not parse: `warn`; configs with no servers: `info`;
- unexpected indentation in a pnpm `packages:` block: one `warn` per file.

### MCP configurations

One record is emitted per configured server, in sorted order of server id,
with the id kept in `server_name`. The package spec is inferred from the
launcher (`npx`, `bunx`, `pnpm`/`yarn`/`bun`/`npm` `dlx`/`exec`/`x`/`run`,
`uvx`, `uv tool run`, `uv --from`, `pipx`, `docker`/`podman run`,
`python -m`). Docker image tags become `version`; npm-style selectors such
as `@latest` go to `requested_spec`. URLs, paths, tarballs and unexpanded
variables are never recorded as package names. Environment values are
never read into records, and remote endpoints are reduced to
`scheme://host` so credentials in user info, paths or query strings
cannot leak.

## What this package does not do

It has no command-line program and does not walk directories: the caller
finds candidate files, picks the scanner with the `is_*` helpers, and
decides what to do with the emitted records. Records are not stored or
serialised by the package.