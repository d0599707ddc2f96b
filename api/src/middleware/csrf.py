"""
CSRF protection middleware (signed double-submit token).

Safe requests (GET) receive a fresh token cookie bound to the client's
session id. Unsafe requests must echo that token in the ``X-CSRF-Token``
header (or the ``_csrf`` form field); the echoed token has to equal the
cookie and carry a valid, unexpired signature for the session.
"""

import uuid
from typing import Callable, Iterable, Optional
from urllib.parse import parse_qs

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.errors import ForbiddenError
from api.src.services.csrf_service import CsrfService

logger = structlog.get_logger(__name__)

SAFE_METHODS = ("GET", "HEAD", "OPTIONS")
SESSION_MAX_AGE = 365 * 24 * 60 * 60


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Enforce CSRF tokens on state-changing requests.

    The token is readable by scripts (not HttpOnly) so single page clients
    can copy it into the header.
    """

    def __init__(
        self,
        app,
        settings: Settings,
        csrf_service: Optional[CsrfService] = None,
        exempt_paths: Optional[Iterable[str]] = None
    ):
        """
        Initialize CSRF middleware.

        Args:
            app: ASGI application
            settings: Application settings (cookie and header names)
            csrf_service: Token signer (built from settings when omitted)
            exempt_paths: Path prefixes that skip validation
        """
        super().__init__(app)
        self.settings = settings
        self.csrf_service = csrf_service or CsrfService(
            settings.session_secret, settings.csrf_token_ttl_seconds
        )
        self.exempt_paths = tuple(exempt_paths or ())

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Validate unsafe requests and issue tokens on safe ones.

        Args:
            request: HTTP request
            call_next: Next middleware in chain

        Returns:
            HTTP response
        """
        if not self.settings.csrf_enabled:
            return await call_next(request)

        session_id = request.cookies.get(self.settings.session_cookie_name)
        new_session = session_id is None
        if new_session:
            session_id = str(uuid.uuid4())
        request.state.session_id = session_id

        if request.method in SAFE_METHODS:
            token = None
            if request.method == "GET":
                token = self.csrf_service.generate_token(session_id)
                request.state.csrf_token = token

            response = await call_next(request)

            if token:
                self._set_token_cookie(response, token)
            if new_session:
                self._set_session_cookie(response, session_id)
            return response

        if self._is_exempt_path(request.url.path):
            return await call_next(request)

        request_token = await self._get_request_token(request)
        cookie_token = request.cookies.get(self.settings.csrf_cookie_name)

        if (
            new_session
            or not request_token
            or not cookie_token
            or request_token != cookie_token
            or not self.csrf_service.validate_token(request_token, session_id)
        ):
            logger.warning(
                "csrf_validation_failed",
                method=request.method,
                path=request.url.path,
                has_header=bool(request_token),
                has_cookie=bool(cookie_token)
            )
            error = ForbiddenError(ERROR_MESSAGES.INVALID_CSRF_TOKEN)
            return JSONResponse(status_code=error.http_code, content=error.to_dict())

        response = await call_next(request)

        if self.settings.csrf_rotate_tokens:
            self._set_token_cookie(response, self.csrf_service.generate_token(session_id))

        return response

    async def _get_request_token(self, request: Request) -> Optional[str]:
        token = request.headers.get(self.settings.csrf_header_name)
        if token:
            return token

        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/x-www-form-urlencoded"):
            body = await request.body()
            values = parse_qs(body.decode("utf-8", errors="replace")).get(
                self.settings.csrf_form_field
            )
            if values:
                return values[0]
        return None

    def _is_exempt_path(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.exempt_paths)

    def _set_token_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            self.settings.csrf_cookie_name,
            token,
            max_age=self.settings.csrf_token_ttl_seconds,
            httponly=False,
            secure=self.settings.cookie_secure,
            samesite="lax",
        )

    def _set_session_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            self.settings.session_cookie_name,
            session_id,
            max_age=SESSION_MAX_AGE,
            httponly=True,
            secure=self.settings.cookie_secure,
            samesite="lax",
        )
