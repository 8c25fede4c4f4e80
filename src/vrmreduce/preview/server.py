"""HTTP server exposing a document to a browser-side previewer."""

import asyncio
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..errors import VrmReduceError
from ..gltf.document import VrmDocument, load
from ..reducer.pipeline import ReduceOptions, reduce_async
from ..reducer.textures import Resizer, pil_resize
from . import geom

logger = logging.getLogger(__name__)


class PreviewServer:
    """Serve the current document, its images and statistics; reduce on request.

    Usage:
        server = PreviewServer(doc, port=8080)
        await server.start()
    """

    def __init__(self, doc: VrmDocument, port: int = 8080, resizer: Resizer = pil_resize):
        self.doc = doc
        self.port = port
        self.resizer = resizer
        # One reduce at a time; the pipeline is not reentrant.
        self._lock = asyncio.Lock()

        self.app = Starlette(
            routes=[
                Route("/model.vrm", self.serve_model),
                Route("/stats", self.stats),
                Route("/images", self.images_manifest),
                Route("/image/{image_ix:int}", self.serve_image),
                Route("/mesh/{mesh_ix:int}.glb", self.serve_mesh),
                Route("/reduce", self.reduce, methods=["POST"]),
            ]
        )

    async def serve_model(self, request: Request) -> Response:
        return Response(
            content=self.doc.serialize(),
            media_type="model/gltf-binary",
            headers={"Content-Disposition": 'attachment; filename="model.vrm"'},
        )

    async def stats(self, request: Request) -> JSONResponse:
        """Return JSON summary of the document."""
        gltf = self.doc.gltf
        payload = {
            "version": self.doc.version,
            "tris": self.doc.count_total_tris(),
            "bufferBytes": self.doc.total_buffer_size,
            "nodes": len(gltf.nodes),
            "meshes": len(gltf.meshes),
            "images": len(gltf.images),
            "accessors": len(gltf.accessors),
            "bufferViews": len(gltf.buffer_views),
        }
        if self.doc.last_report is not None:
            payload["lastReport"] = self.doc.last_report.to_json()
        return JSONResponse(payload)

    async def images_manifest(self, request: Request) -> JSONResponse:
        manifest = [
            {
                "id": image_ix,
                "name": image.name,
                "mimeType": image.mime_type,
                "dataUrl": self.doc.get_image_as_data_url(image_ix),
            }
            for image_ix, image in enumerate(self.doc.gltf.images)
            if image.buffer_view is not None
        ]
        return JSONResponse(manifest)

    async def serve_image(self, request: Request) -> Response:
        image_ix = int(request.path_params["image_ix"])
        if not 0 <= image_ix < len(self.doc.gltf.images):
            return Response(status_code=404)
        image = self.doc.gltf.images[image_ix]
        if image.buffer_view is None:
            return Response(status_code=404)
        return Response(
            content=self.doc.get_image_bytes(image_ix),
            media_type=image.mime_type or "application/octet-stream",
        )

    async def serve_mesh(self, request: Request) -> Response:
        mesh_ix = int(request.path_params["mesh_ix"])
        if not 0 <= mesh_ix < len(self.doc.gltf.meshes):
            return Response(status_code=404)
        return Response(
            content=geom.mesh_to_glb(self.doc, mesh_ix),
            media_type="model/gltf-binary",
        )

    async def reduce(self, request: Request) -> JSONResponse:
        body = await request.body()
        try:
            options = ReduceOptions.from_json(await request.json() if body else {})
        except (ValueError, TypeError) as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        if self._lock.locked():
            return JSONResponse({"error": "reduction already running"}, status_code=409)
        async with self._lock:
            # A failed run leaves its document inconsistent; work on a copy.
            candidate = load(self.doc.serialize())
            candidate.version = self.doc.version
            try:
                await reduce_async(candidate, options, self.resizer)
            except VrmReduceError as e:
                logger.error("reduce failed, keeping previous document: %s", e)
                return JSONResponse({"error": str(e)}, status_code=500)
            self.doc = candidate
        return JSONResponse(self.doc.last_report.to_json())

    async def start(self):
        """Start the server."""
        config = uvicorn.Config(
            self.app,
            host="127.0.0.1",
            port=self.port,
            log_level="error",
        )
        server = uvicorn.Server(config)
        await server.serve()
