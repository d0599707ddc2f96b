"""
Google sign-in (OAuth 2.0 authorization code flow over httpx).

After the provider callback the API never hands tokens to the browser in a
URL: it stores them in the cache under a one-time code, redirects the client
with that code, and the client exchanges it via POST for the access token.
"""

from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode
from uuid import UUID

import httpx
import structlog

from api.src.config import Settings
from api.src.constants import ERROR_MESSAGES
from api.src.errors import BadRequestError, UnauthorizedError
from api.src.models.auth import ClientContext
from api.src.models.user import UserDB
from api.src.repositories.user_repo import UserRepository
from api.src.services.cache_service import CacheService
from api.src.services.jwt_service import JwtService
from api.src.services.refresh_token_service import RefreshTokenService
from shared.metrics import get_app_metrics
from shared.security.crypto import generate_secure_token
from shared.tracing import trace_function

logger = structlog.get_logger(__name__)

GOOGLE_PROVIDER = "google"
GOOGLE_SCOPES = "openid email profile"
OAUTH_CODE_KEY = "oauth-code:{code}"


class OAuthService:
    """Signs users in with Google."""

    def __init__(
        self,
        user_repo: UserRepository,
        refresh_token_service: RefreshTokenService,
        jwt_service: JwtService,
        cache: CacheService,
        http_client: httpx.AsyncClient,
        settings: Settings
    ):
        self.user_repo = user_repo
        self.refresh_token_service = refresh_token_service
        self.jwt_service = jwt_service
        self.cache = cache
        self.http_client = http_client
        self.settings = settings

    # ========================================================================
    # Provider round trip
    # ========================================================================

    def authorization_url(self, state: str) -> str:
        """Google consent screen URL for a given anti-forgery state."""
        query = urlencode({
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_callback_url,
            "response_type": "code",
            "scope": GOOGLE_SCOPES,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        })
        return f"{self.settings.google_auth_url}?{query}"

    @trace_function("google.fetch_profile")
    async def fetch_google_profile(self, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code and read the user's profile.

        Args:
            code: Authorization code from the callback

        Returns:
            Userinfo claims (sub, email, name, picture, ...)

        Raises:
            UnauthorizedError: Provider rejected the code or returned no email
        """
        try:
            token_response = await self.http_client.post(
                self.settings.google_token_url,
                data={
                    "code": code,
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "redirect_uri": self.settings.google_callback_url,
                    "grant_type": "authorization_code",
                }
            )
            token_response.raise_for_status()
            provider_token = token_response.json()["access_token"]

            profile_response = await self.http_client.get(
                self.settings.google_userinfo_url,
                headers={"Authorization": f"Bearer {provider_token}"}
            )
            profile_response.raise_for_status()
            profile = profile_response.json()

        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("google_oauth_exchange_failed", error=str(e))
            raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED) from e

        if not profile.get("sub") or not profile.get("email"):
            logger.warning("google_profile_incomplete")
            raise UnauthorizedError(ERROR_MESSAGES.UNAUTHORIZED)

        return profile

    # ========================================================================
    # Sign-in
    # ========================================================================

    async def find_or_create_user(self, profile: Dict[str, Any], conn=None) -> UserDB:
        """
        Resolve the local user for a Google profile.

        Linked account -> its user; otherwise a user with the same email gets
        the account linked; otherwise a new verified user is created.
        """
        provider_account_id = str(profile["sub"])
        account = await self.user_repo.get_account_by_provider(
            GOOGLE_PROVIDER, provider_account_id, conn=conn
        )
        if account:
            user = await self.user_repo.get_user_by_id(account.user_id, conn=conn)
            if user:
                logger.info("oauth_login", user_id=str(user.id), provider=GOOGLE_PROVIDER)
                return user

        user = await self.user_repo.get_user_by_email(profile["email"], conn=conn)
        if user is None:
            user = await self.user_repo.create_user(
                username=profile.get("name") or profile["email"].split("@")[0],
                email=profile["email"],
                password_hash=None,
                is_email_verified=True,
                profile_picture=profile.get("picture"),
                conn=conn
            )
            logger.info("oauth_signup", user_id=str(user.id), provider=GOOGLE_PROVIDER)
        elif not user.is_email_verified:
            # Google has verified the address
            user = await self.user_repo.mark_email_verified(user.id, conn=conn)

        await self.user_repo.create_account(
            user.id, GOOGLE_PROVIDER, provider_account_id, account_type="oauth", conn=conn
        )
        return user

    async def handle_oauth_login(
        self,
        profile: Dict[str, Any],
        device_id: str,
        ip_address: str,
        client_context: Optional[ClientContext] = None
    ) -> Tuple[str, str]:
        """
        Sign a Google user in.

        Args:
            profile: Google userinfo claims
            device_id: Client device id
            ip_address: Client IP address
            client_context: User agent details

        Returns:
            (one-time exchange code, refresh token)
        """
        async with self.user_repo.transaction() as conn:
            user = await self.find_or_create_user(profile, conn=conn)
            refresh_token = await self.refresh_token_service.create_token(
                user.id, device_id, ip_address, client_context, conn=conn
            )

        access_token = self.jwt_service.generate_access_token(user.id)
        code = await self.generate_temporary_code(user.id, access_token, refresh_token)

        get_app_metrics().auth_events.labels(event="oauth_login", outcome="success").inc()
        return code, refresh_token

    async def generate_temporary_code(
        self,
        user_id: UUID,
        access_token: str,
        refresh_token: str
    ) -> str:
        """Stash tokens under a random one-time code."""
        code = generate_secure_token()
        await self.cache.set(
            OAUTH_CODE_KEY.format(code=code),
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "user_id": str(user_id),
            },
            self.settings.oauth_code_ttl_seconds
        )
        return code

    async def exchange_code(self, code: str) -> Dict[str, str]:
        """
        Redeem a one-time code. The code is deleted on read.

        Returns:
            {"access_token", "refresh_token", "user_id"}

        Raises:
            BadRequestError: INVALID_OAUTH_CODE
        """
        data = await self.cache.take(OAUTH_CODE_KEY.format(code=code))
        if not data:
            logger.warning("oauth_code_invalid")
            raise BadRequestError(ERROR_MESSAGES.INVALID_OAUTH_CODE)
        return data
