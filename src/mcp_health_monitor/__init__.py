"""MCP Health Monitor

Monitors externally configured MCP servers, reports their health and
restarts the ones that have stopped.
"""

from .__version__ import __version__

__all__ = ["__version__"]
