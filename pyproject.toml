[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pkginventory"
version = "0.1.0"
description = "Read-only inventory of packages from npm, pnpm, PyPI and RubyGems metadata and MCP server configuration files"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "inventory",
    "supply-chain",
    "npm",
    "pnpm",
    "pypi",
    "rubygems",
    "lockfile",
    "mcp",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pkginventory"]

[tool.pytest.ini_options]
addopts = "-ra"
