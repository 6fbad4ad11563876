from __future__ import annotations

from starlette.responses import Response


CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "X-Requested-With, X-HTTP-Method-Override, Content-Type, Accept",
    "Access-Control-Allow-Credentials": "false",
    "Access-Control-Max-Age": "86400",
}

ALLOWED_METHODS = "GET, HEAD, OPTIONS"


class CorsMiddleware:
    """Permissive CORS: fixed headers on every response and uniform preflight."""

    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled

    def is_preflight(self, method: str) -> bool:
        return method.upper() == "OPTIONS"

    def preflight_response(self) -> Response:
        if not self.enabled:
            return Response(status_code=204, headers={"Allow": ALLOWED_METHODS})
        return Response(
            b"{}",
            status_code=200,
            headers=dict(CORS_HEADERS),
            media_type="application/json",
        )

    def apply(self, response: Response) -> Response:
        if self.enabled:
            for name, value in CORS_HEADERS.items():
                response.headers[name] = value
        return response


__all__ = ["ALLOWED_METHODS", "CORS_HEADERS", "CorsMiddleware"]
