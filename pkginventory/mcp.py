"""Scanner for Model Context Protocol server configuration files.

MCP configs are JSON. Clients wrap the same per-server shape in different
envelopes: ``{"mcpServers": {...}}``, ``{"servers": {...}}`` or a flat
``{"<id>": {...}}`` object. One record is emitted per configured server.
Env values are never recorded. Remote servers (identified by a url,
serverUrl or httpUrl field and no command) are recorded with their
endpoint reduced to ``scheme://host``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from pkginventory.mcp_args import (
    infer_package_from_args,
    looks_like_package_spec,
    looks_unresolved_shell_var,
    sanitize_remote_url,
    split_docker_image_ref,
    split_spec,
)
from pkginventory.record import ECOSYSTEM_MCP, ROOT_KIND_MCP_CONFIG, BaseScanner, Record

ECOSYSTEM = ECOSYSTEM_MCP

_KNOWN_CONFIG_NAMES = frozenset(
    {
        "mcp.json",
        "claude_desktop_config.json",
        "mcp_config.json",
        "mcp_settings.json",
        "cline_mcp_settings.json",
        ".mcp.json",
    }
)


def is_known_mcp_config(base: str) -> bool:
    """True when the basename is one of the known MCP config file names."""
    return base in _KNOWN_CONFIG_NAMES


def is_gemini_settings_json(path: str) -> bool:
    """True for ``<dir>/.gemini/settings.json``.

    Matching is path-aware because ``settings.json`` alone is too common a
    name to feed to the MCP parser.
    """
    return (
        os.path.basename(path) == "settings.json"
        and os.path.basename(os.path.dirname(path)) == ".gemini"
    )


def is_claude_config_json(path: str) -> bool:
    """True when the basename is ``.claude.json``."""
    return os.path.basename(path) == ".claude.json"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _load_json(data: bytes) -> Any:
    return json.loads(data.decode("utf-8", errors="replace"), parse_constant=_reject_constant)


def _field(obj: dict[str, Any], name: str) -> Any:
    """Value of a JSON object member, matching the key case-insensitively.

    When several keys match, the last one in document order wins.
    """
    wanted = name.lower()
    value = None
    for key, item in obj.items():
        if key == name or key.lower() == wanted:
            value = item
    return value


def _string(obj: dict[str, Any], name: str) -> str:
    value = _field(obj, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r}: expected string, got {type(value).__name__}")
    return value


def _object(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{where}: expected object, got {type(value).__name__}")
    return value


@dataclass
class ServerEntry:
    """The fields of one configured MCP server that the scanner reads."""

    command: str = ""
    args: list[str] = field(default_factory=list)
    url: str = ""
    server_url: str = ""
    http_url: str = ""
    type: str = ""

    def remote_url(self) -> str:
        """The first non-empty of url, serverUrl and httpUrl, or ""."""
        return self.url or self.server_url or self.http_url

    def looks_like_server(self) -> bool:
        """True when the entry carries enough signal to be an MCP server."""
        return bool(self.command or self.remote_url() or self.args or self.type)


def parse_server_entry(data: Any) -> ServerEntry:
    """Build a ServerEntry from a decoded JSON value.

    ``null`` gives an empty entry. Raises ValueError when the value or one
    of the read fields has the wrong JSON type. Env is type-checked but
    its contents are discarded.
    """
    obj = _object(data, "server entry")
    raw_args = _field(obj, "args")
    if raw_args is None:
        args: list[str] = []
    elif isinstance(raw_args, list):
        args = []
        for item in raw_args:
            if item is not None and not isinstance(item, str):
                raise ValueError(f"field 'args': expected strings, got {type(item).__name__}")
            args.append(item or "")
    else:
        raise ValueError(f"field 'args': expected array, got {type(raw_args).__name__}")
    _object(_field(obj, "env"), "field 'env'")
    return ServerEntry(
        command=_string(obj, "command"),
        args=args,
        url=_string(obj, "url"),
        server_url=_string(obj, "serverUrl"),
        http_url=_string(obj, "httpUrl"),
        type=_string(obj, "type"),
    )


def _server_map(value: Any, where: str) -> dict[str, ServerEntry]:
    return {key: parse_server_entry(item) for key, item in _object(value, where).items()}


def _dirname(path: str) -> str:
    return os.path.dirname(path) or "."


class McpScanner(BaseScanner):
    """Emits one record per MCP server configured in a config file."""

    def scan_config(self, path: str, base: Record) -> None:
        """Parse a generic MCP config and emit its servers.

        Tries the ``mcpServers`` envelope, then ``servers`` (which does not
        override ids already seen), then a flat object of server entries.
        Unparseable files produce a warn diagnostic, files with no servers
        an info diagnostic; neither raises.
        """
        data = self.read_bounded(path)
        try:
            doc = _load_json(data)
        except ValueError as exc:
            self.diagnose("warn", path, f"parse MCP config: {exc}")
            return

        servers: dict[str, ServerEntry] = {}
        envelope_error: Optional[ValueError] = None
        try:
            envelope = _object(doc, "config")
            mcp_servers = _server_map(_field(envelope, "mcpServers"), "mcpServers")
            plain_servers = _server_map(_field(envelope, "servers"), "servers")
        except ValueError as exc:
            envelope_error = exc
        else:
            servers.update(mcp_servers)
            for key, entry in plain_servers.items():
                servers.setdefault(key, entry)

        flat_error: Optional[ValueError] = None
        if not servers:
            try:
                flat = _server_map(doc, "config")
            except ValueError as exc:
                flat_error = exc
            else:
                servers.update(
                    (key, entry) for key, entry in flat.items() if entry.looks_like_server()
                )

        if not servers:
            if envelope_error is not None and flat_error is not None:
                self.diagnose("warn", path, f"parse MCP config: {envelope_error}")
            else:
                self.diagnose("info", path, "no MCP servers parsed")
            return

        self._emit_servers(servers, base, path, _dirname(path))

    def scan_claude_config(self, path: str, base: Record) -> None:
        """Parse a ``.claude.json`` and emit user-scope and per-project servers.

        Only the top-level ``mcpServers`` and ``projects.<dir>.mcpServers``
        maps are read. Per-project servers carry the project directory as
        their project path; projects are visited in sorted order.
        """
        data = self.read_bounded(path)
        try:
            doc = _object(_load_json(data), "config")
            top_level = _server_map(_field(doc, "mcpServers"), "mcpServers")
            projects = {
                directory: _server_map(
                    _field(_object(project, f"project {directory!r}"), "mcpServers"),
                    "mcpServers",
                )
                for directory, project in _object(_field(doc, "projects"), "projects").items()
            }
        except ValueError as exc:
            self.diagnose("warn", path, f"parse Claude config: {exc}")
            return

        self._emit_servers(top_level, base, path, _dirname(path))
        for directory in sorted(projects):
            self._emit_servers(projects[directory], base, path, directory)

    def _emit_servers(
        self,
        servers: dict[str, ServerEntry],
        base: Record,
        source_path: str,
        project_path: str,
    ) -> None:
        for server_id in sorted(servers):
            record = self._server_record(server_id, servers[server_id], base, source_path, project_path)
            if record is not None:
                self.emit(record)

    @staticmethod
    def _server_record(
        server_id: str,
        server: ServerEntry,
        base: Record,
        source_path: str,
        project_path: str,
    ) -> Optional[Record]:
        record = replace(
            base,
            ecosystem=ECOSYSTEM,
            package_manager="mcp",
            source_type="mcp-config",
            source_file=source_path,
            project_path=project_path,
            root_kind=ROOT_KIND_MCP_CONFIG,
            server_name=server_id,
            confidence="low",
        )

        if not server.command:
            endpoint = sanitize_remote_url(server.remote_url())
            if not endpoint:
                return None
            record.package_name = server_id
            record.normalized_name = server_id.lower()
            record.package_manager = "mcp-remote"
            record.requested_spec = endpoint
            return record

        spec, launcher = infer_package_from_args(server.command, server.args)
        selector = ""
        version = ""
        if launcher == "docker":
            name, version = split_docker_image_ref(spec)
        else:
            name, selector = split_spec(spec)
        # Unexpanded variables, URLs, paths and tarballs carry no package
        # identity and may embed credentials, so they are never recorded.
        if looks_unresolved_shell_var(name) or (
            launcher != "docker" and not looks_like_package_spec(spec)
        ):
            name = spec = selector = ""
        name = name or server_id

        record.package_name = name
        record.normalized_name = name.lower()
        if launcher:
            record.package_manager = launcher
        if version:
            record.version = version
        if selector:
            record.requested_spec = spec
        # A tagged or digest-pinned image names one specific artifact.
        if launcher == "docker" and (version or "@sha256:" in name):
            record.confidence = "medium"
        return record