from __future__ import annotations

from typing import Awaitable, Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from app.db.session import session_factory_from
from app.services.maintenance import MaintenanceStatus, get_maintenance_status, is_exempt_path

StatusReader = Callable[..., Awaitable[MaintenanceStatus]]


class MaintenanceMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        exempt_prefixes: Iterable[str],
        redirect_path: str = "/maintenance",
        status_reader: StatusReader = get_maintenance_status,
    ) -> None:
        super().__init__(app)
        self._exempt_prefixes = list(exempt_prefixes)
        self._redirect_path = redirect_path
        self._status_reader = status_reader

    async def dispatch(self, request: Request, call_next):
        path = request.url.path or "/"
        if is_exempt_path(path, self._exempt_prefixes, self._redirect_path):
            return await call_next(request)

        status = await self._status_reader(session_factory_from(request.app))
        if not status.enabled:
            return await call_next(request)
        if status.exempt_paths and is_exempt_path(path, status.exempt_paths, self._redirect_path):
            return await call_next(request)
        return RedirectResponse(self._redirect_path, status_code=307)
