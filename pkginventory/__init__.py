"""Read-only package inventory scanners for npm, pnpm, PyPI, RubyGems and MCP configs."""

__version__ = "0.1.0"
__all__ = ["record", "npm", "pnpm", "pypi", "rubygems", "mcp_args", "mcp"]