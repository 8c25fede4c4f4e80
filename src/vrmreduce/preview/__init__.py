"""Browser preview: trimesh conversion and the HTTP server."""

from . import geom
from .server import PreviewServer

__all__ = ["geom", "PreviewServer"]
