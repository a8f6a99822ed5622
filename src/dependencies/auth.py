import hmac
from typing import Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.config.settings import Settings
from src.dependencies.services import get_settings
from src.shared.exceptions import UnauthorizedException
from src.shared.utils import get_logger

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


class ApiTokenChecker:
    """
    Bearer-token guard for server-to-server callers.

    The expected token is read from settings on each request; an unset token
    rejects every caller.
    """

    def __init__(self, setting_name: str):
        self.setting_name = setting_name

    async def __call__(
        self,
        credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
        app_settings: Settings = Depends(get_settings),
    ) -> str:
        expected = getattr(app_settings, self.setting_name, None)
        if not expected:
            logger.error(f"{self.setting_name} is not configured; rejecting request")
            raise UnauthorizedException(detail="API access is not configured")

        if not credentials or not credentials.credentials:
            raise UnauthorizedException(detail="Authentication token is missing")

        if not hmac.compare_digest(
            credentials.credentials.encode("utf-8"), expected.encode("utf-8")
        ):
            raise UnauthorizedException(detail="Invalid authentication credentials")

        return self.setting_name


require_external_token = ApiTokenChecker("EXTERNAL_API_TOKEN")
require_admin_token = ApiTokenChecker("ADMIN_API_TOKEN")
