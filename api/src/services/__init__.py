"""Business services of the TubeNote API."""

from api.src.services.auth_service import AuthService
from api.src.services.cache_service import CacheService
from api.src.services.csrf_service import CsrfService
from api.src.services.jwt_service import JwtService
from api.src.services.mail_service import MailService
from api.src.services.note_service import NoteService
from api.src.services.oauth_service import OAuthService
from api.src.services.password_hasher import PasswordHasher
from api.src.services.rate_limit_service import RateLimitService
from api.src.services.refresh_token_service import RefreshTokenService
from api.src.services.reset_password_service import ResetPasswordService
from api.src.services.user_service import UserService
from api.src.services.verify_email_service import VerifyEmailService
from api.src.services.video_service import VideoService
from api.src.services.youtube_client import YouTubeClient

__all__ = [
    "AuthService",
    "CacheService",
    "CsrfService",
    "JwtService",
    "MailService",
    "NoteService",
    "OAuthService",
    "PasswordHasher",
    "RateLimitService",
    "RefreshTokenService",
    "ResetPasswordService",
    "UserService",
    "VerifyEmailService",
    "VideoService",
    "YouTubeClient",
]
