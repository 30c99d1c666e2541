"""
HTTP middleware: per-IP rate limiting and request logging
"""

from collections import defaultdict
import time
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from ..logging_config import get_logger, log_action

logger = get_logger("investnaija.api.requests")


class RateLimiter:
    def __init__(self, requests_per_minute: int = 120):
        self.requests = defaultdict(list)
        self.rpm = requests_per_minute
        self._last_sweep = time.time()

    def _sweep(self, now: float) -> None:
        """Forget clients with no requests in the last minute"""
        for client_ip in [ip for ip, stamps in self.requests.items() if not stamps or now - stamps[-1] >= 60]:
            del self.requests[client_ip]
        self._last_sweep = now

    async def __call__(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        if now - self._last_sweep >= 60:
            self._sweep(now)
        # Only requests from the last minute count
        self.requests[client_ip] = [t for t in self.requests[client_ip] if now - t < 60]
        if len(self.requests[client_ip]) >= self.rpm:
            log_action(logger, "warning", "Rate limit exceeded", action="http.rate_limited",
                       extra={"client_ip": client_ip, "path": request.url.path})
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests from this IP, please try again later."}
            )
        self.requests[client_ip].append(now)
        return await call_next(request)


async def request_logger(request: Request, call_next):
    """Tag each request with an X-Request-ID and log method, path, status and latency"""
    correlation_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = correlation_id
    level = "error" if response.status_code >= 500 else "warning" if response.status_code >= 400 else "info"
    log_action(logger, level, f"{request.method} {request.url.path} {response.status_code}",
               action="http.request", correlation_id=correlation_id,
               extra={"status": response.status_code, "duration_ms": elapsed_ms})
    return response
