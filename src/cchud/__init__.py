"""Live terminal dashboard for Claude Code sessions."""

__version__ = "0.1.0"
