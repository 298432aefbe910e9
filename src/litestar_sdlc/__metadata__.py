"""Project metadata read from the installed ``litestar-sdlc`` distribution."""

from __future__ import annotations

import importlib.metadata

__all__ = ("__project__", "__version__")

__version__ = importlib.metadata.version("litestar-sdlc")
"""Version of the project."""
__project__ = importlib.metadata.metadata("litestar-sdlc")["Name"]
"""Name of the project."""
