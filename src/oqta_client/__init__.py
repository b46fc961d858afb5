"""
oqta-client: desktop and command-line client for an OqtaDrive server.

Keeps a view of the eight drive slots in sync with the server and loads,
unloads and maps cartridges on request.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
