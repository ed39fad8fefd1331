"""Helpers that pull a package identity out of MCP server launch commands.

They cover reading the launcher's command and arguments, splitting
package specs and image references, and rejecting values that are paths,
URLs or unexpanded variables. Remote endpoints are reduced to a form
that cannot carry credentials.
"""

from __future__ import annotations

import os
import re
from typing import AbstractSet, Optional, Sequence
from urllib.parse import urlsplit

# npm/pnpm/yarn/bun flags that consume the following argument. Skipping
# their values keeps a registry URL (often credential-bearing) from being
# read as the package spec.
NPM_VALUE_TAKING_FLAGS = frozenset(
    {
        "--registry",
        "--reg",
        "--cache",
        "--prefix",
        "--userconfig",
        "--globalconfig",
        "--node-options",
        "--node-version",
        "--workspace",
        "-w",
        "--filter",
        "--otp",
        "--access",
        "--auth-type",
        "--tag",
        "--call",
        "-c",
        "--package",
        "--shell",
        "--script-shell",
        "--cwd",
        "--loglevel",
        "--store",
        "--store-dir",
        "--virtual-store-dir",
        "--lockfile-dir",
        "--config",
        "--config-file",
    }
)

DOCKER_VALUE_TAKING_FLAGS = frozenset(
    {
        "-e",
        "--env",
        "--env-file",
        "-v",
        "--volume",
        "--mount",
        "-p",
        "--publish",
        "--name",
        "--network",
        "--user",
        "-u",
        "--workdir",
        "-w",
        "--entrypoint",
        "--label",
        "-l",
        "--add-host",
        "--platform",
    }
)

_NPM_SUBCOMMANDS = frozenset({"dlx", "exec", "x", "run"})
_UV_TOOL_WORDS = frozenset({"tool", "run"})
_PIPX_WORDS = frozenset({"run"})

_URL_PREFIXES = (
    "http://",
    "https://",
    "ftp://",
    "ftps://",
    "ssh://",
    "git://",
    "git+",
    "svn://",
    "svn+",
    "file://",
    "file:",
    "github:",
    "gitlab:",
    "bitbucket:",
    "gist:",
    "npm:",
)
_TARBALL_SUFFIXES = (".tgz", ".tar.gz", ".tar.bz2", ".tar", ".zip")
_RELATIVE_PREFIXES = ("./", "../", ".\\", "..\\")

_POSIX_VAR = re.compile(r"\$[_A-Za-z]")
_WINDOWS_VAR_NAME = re.compile(r"[_A-Za-z0-9]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _command_base(command: str) -> str:
    stripped = command.rstrip("/")
    if not stripped:
        return "/" if command else "."
    return os.path.basename(stripped)


def _value_after(args: Sequence[str], flag: str) -> Optional[str]:
    """The argument following the first ``flag`` that has one, else None."""
    for arg, following in zip(args, args[1:]):
        if arg == flag:
            return following
    return None


def first_non_flag(
    args: Sequence[str],
    skip: Optional[AbstractSet[str]] = None,
    value_taking: Optional[AbstractSet[str]] = None,
) -> str:
    """First argument that is neither a flag nor in ``skip``.

    Flags in ``value_taking`` also consume the next argument; the
    ``--flag=value`` form is a single token.
    """
    skip = skip or frozenset()
    value_taking = value_taking or frozenset()
    remaining = iter(args)
    for arg in remaining:
        if arg.startswith("-"):
            if "=" not in arg and arg in value_taking:
                next(remaining, None)
            continue
        if arg in skip:
            continue
        return arg
    return ""


def scan_explicit_package(args: Sequence[str], skip: Optional[AbstractSet[str]] = None) -> str:
    """Value of ``--package <pkg>`` / ``--package=<pkg>`` in the launcher's own options.

    The scan stops at ``--`` and at the first positional argument that is
    not a recognised subcommand, since later arguments belong to the child
    command. Returns "" when no explicit package is named.
    """
    skip = skip or frozenset()
    remaining = iter(args)
    for arg in remaining:
        if arg == "--":
            return ""
        if arg.startswith("--package="):
            return arg[len("--package=") :]
        if arg == "--package":
            return next(remaining, "")
        if arg.startswith("-"):
            if "=" not in arg and arg in NPM_VALUE_TAKING_FLAGS:
                next(remaining, None)
            continue
        if arg in skip:
            continue
        return ""
    return ""


def _docker_image(args: Sequence[str]) -> str:
    remaining = iter(args)
    started = False
    for arg in remaining:
        if not started:
            started = True
            if arg in ("run", "container"):
                continue
        if arg.startswith("-"):
            if "=" not in arg and arg in DOCKER_VALUE_TAKING_FLAGS:
                next(remaining, None)
            continue
        return arg
    return ""


def infer_package_from_args(command: str, args: Sequence[str]) -> tuple[str, str]:
    """Best-effort ``(spec, launcher)`` for a server's command line.

    The launcher is "" for npm-style launchers and python modules, and
    "uv", "pipx" or "docker" for launchers whose spec is not an npm spec.
    """
    base = _command_base(command)
    if base in ("npx", "bunx"):
        spec = scan_explicit_package(args)
        if spec:
            return spec, ""
        return first_non_flag(args, None, NPM_VALUE_TAKING_FLAGS), ""
    if base in ("pnpm", "yarn", "bun", "npm"):
        spec = scan_explicit_package(args, _NPM_SUBCOMMANDS)
        if spec:
            return spec, ""
        return first_non_flag(args, _NPM_SUBCOMMANDS, NPM_VALUE_TAKING_FLAGS), ""
    if base == "uvx":
        return first_non_flag(args), "uv"
    if base == "uv":
        source = _value_after(args, "--from")
        if source is not None:
            return source, "uv"
        # Plain "uv run <path>" runs a local script or project, not a package.
        if "tool" not in args:
            return "", "uv"
        return first_non_flag(args, _UV_TOOL_WORDS), "uv"
    if base == "pipx":
        spec = _value_after(args, "--spec")
        if spec is not None:
            return spec, "pipx"
        return first_non_flag(args, _PIPX_WORDS), "pipx"
    if base in ("docker", "podman"):
        return _docker_image(args), "docker"
    if base in ("python", "python3"):
        module = _value_after(args, "-m")
        if module is not None:
            return "python:" + module, ""
    return "", ""


def looks_unresolved_shell_var(value: str) -> bool:
    """True when value holds an unexpanded ``${VAR}``, ``$VAR`` or ``%VAR%`` reference."""
    if "${" in value:
        return True
    if _POSIX_VAR.search(value):
        return True
    first = value.find("%")
    if first >= 0:
        second = value.find("%", first + 1)
        if second > first + 1 and _WINDOWS_VAR_NAME.fullmatch(value[first + 1 : second]):
            return True
    return False


def _is_windows_absolute(spec: str) -> bool:
    return (
        len(spec) >= 3
        and spec[1] == ":"
        and spec[2] in "\\/"
        and spec[0].isascii()
        and spec[0].isalpha()
    )


def looks_like_package_spec(spec: str) -> bool:
    """True for plausible package specs; False for URLs, VCS refs, paths and tarballs.

    Bare and scoped names, version selectors and npm alias specs are
    accepted, as is the ``python:<module>`` pseudo-spec.
    """
    if not spec:
        return False
    if spec.startswith("python:"):
        return True
    if spec.startswith("/") or _is_windows_absolute(spec):
        return False
    if spec.startswith(_RELATIVE_PREFIXES) or "\\" in spec:
        return False
    lower = spec.lower()
    if lower.startswith(_URL_PREFIXES) or lower.endswith(_TARBALL_SUFFIXES):
        return False
    at = spec.find("@")
    if at > 0:
        rest = spec[at:]
        if rest.startswith("@npm:"):
            target = rest[len("@npm:") :]
            return bool(target) and looks_like_package_spec(target)
        # An "@" followed later by "/" is the authority part of a bare URL.
        if "/" in rest:
            return False
    return True


def split_spec(spec: str) -> tuple[str, str]:
    """Split an npm-style spec into ``(name, selector)``.

    ``@playwright/mcp@latest`` gives ``("@playwright/mcp", "@latest")``; the
    leading scope marker stays on the name, and for an alias spec the
    selector starts at ``@npm:``.
    """
    if not spec:
        return "", ""
    if spec.startswith("python:"):
        return spec, ""
    start = 1 if spec.startswith("@") else 0
    alias = spec.find("@npm:", start)
    if alias >= 0:
        return spec[:alias], spec[alias:]
    cut = spec.rfind("@", start)
    if cut - start <= 0:
        return spec, ""
    return spec[:cut], spec[cut:]


def split_docker_image_ref(ref: str) -> tuple[str, str]:
    """Split an OCI image reference into ``(name, tag)``.

    Only a colon after the last slash separates a tag, so registry ports
    stay on the name. A digest stays on the name; ``image:tag@digest``
    gives ``("image@digest", "tag")``.
    """
    if not ref:
        return "", ""
    head, at, rest = ref.partition("@")
    if at:
        digest = at + rest
        colon = head.rfind(":")
        if colon > head.rfind("/"):
            return head[:colon] + digest, head[colon + 1 :]
        return ref, ""
    colon = ref.rfind(":")
    if colon > ref.rfind("/"):
        return ref[:colon], ref[colon + 1 :]
    return ref, ""


def _valid_host(host: str) -> bool:
    if host.startswith("["):
        close = host.find("]")
        if close < 0:
            return False
        port = host[close + 1 :]
        return port == "" or (port.startswith(":") and port[1:].isdigit() or port == ":")
    colon = host.rfind(":")
    if colon < 0:
        return True
    port = host[colon + 1 :]
    return port == "" or (port.isascii() and port.isdigit())


def sanitize_remote_url(url: str) -> str:
    """Reduce an endpoint URL to ``scheme://host`` (or ``//host``).

    Userinfo, path, query and fragment are dropped. Returns "" when the URL
    does not parse or has no host, so a raw value is never recorded.
    """
    if not url or _CONTROL_CHARS.search(url):
        return ""
    try:
        parsed = urlsplit(url)
    except ValueError:
        return ""
    host = parsed.netloc.rpartition("@")[2]
    if not host or not _valid_host(host):
        return ""
    if parsed.scheme:
        return f"{parsed.scheme}://{host}"
    if url.startswith("//"):
        return "//" + host
    return ""