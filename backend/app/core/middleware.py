# backend/app/core/middleware.py
# Limite de taille des corps de requête (API et webhooks), refusés en 413 avant lecture.

from collections.abc import Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.api.dto.response_format import ErrorResponse


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_body_size: int, exclude_paths: Sequence[str] = ()):
        super().__init__(app)
        self.max_body_size = max_body_size
        self.exclude_paths = exclude_paths

    async def dispatch(self, request, call_next):
        if any(request.url.path.startswith(p) for p in self.exclude_paths):
            return await call_next(request)

        cl = request.headers.get("content-length")
        if cl is not None and cl.isdigit() and int(cl) > self.max_body_size:
            return JSONResponse(
                ErrorResponse.from_detail(
                    {"code": "PAYLOAD_TOO_LARGE", "message": f"Request body exceeds {self.max_body_size} bytes"}
                ).model_dump(),
                status_code=413,
            )
        return await call_next(request)
