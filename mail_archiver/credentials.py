"""Gmail access tokens for the queue worker."""
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from mail_archiver import settings
from mail_archiver.errors import CredentialError
from mail_archiver.logging_conf import logger

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def _expiry_ms(expiry: Optional[datetime]) -> int:
    """google-auth reports expiry as naive UTC; stored tokens use epoch milliseconds."""
    if expiry is None:
        expiry = datetime.now(timezone.utc) + timedelta(hours=1)
    elif expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return int(expiry.timestamp() * 1000)


class TokenManager:
    """Supplies valid access tokens, refreshing expired ones."""

    def __init__(self, db, session=None):
        self.db = db
        self.session = session or requests.Session()
        # user_id -> (access_token, expires_at_ms)
        self._cache: Dict[str, Tuple[str, int]] = {}

    def get_access_token(self, user_id) -> str:
        """
        Return a usable access token for the user.

        Raises:
            CredentialError: no token stored, or refresh failed
        """
        now_ms = int(time.time() * 1000)
        skew_ms = settings.TOKEN_EXPIRY_SKEW_SECONDS * 1000

        cached = self._cache.get(str(user_id))
        if cached and cached[1] - skew_ms > now_ms:
            return cached[0]

        try:
            token = self.db.get_oauth_token(user_id)
        except Exception as e:
            raise CredentialError(f"Failed to load Gmail token for user {user_id}: {e}") from e

        if not token:
            raise CredentialError(f"No Gmail token stored for user {user_id}")

        access_token = token["access_token"]
        expires_at = int(token["expires_at"])
        if expires_at - skew_ms <= now_ms:
            access_token, expires_at = self._refresh(user_id, token["refresh_token"])

        self._cache[str(user_id)] = (access_token, expires_at)
        return access_token

    def invalidate(self, user_id) -> None:
        self._cache.pop(str(user_id), None)

    def _refresh(self, user_id, refresh_token: str) -> Tuple[str, int]:
        """Exchange the refresh token for a new access token and store it."""
        if not refresh_token:
            raise CredentialError(f"No refresh token stored for user {user_id}")

        logger.info(f"Refreshing Gmail access token for user {user_id}")
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URL,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
        )
        try:
            credentials.refresh(Request(session=self.session))
        except GoogleAuthError as e:
            # RefreshError (revoked / invalid grant) and TransportError (network)
            raise CredentialError(f"Token refresh failed for user {user_id}: {e}") from e

        if not credentials.token:
            raise CredentialError(f"Token refresh for user {user_id} returned no access_token")

        access_token = credentials.token
        expires_at = _expiry_ms(credentials.expiry)
        try:
            self.db.update_access_token(user_id, access_token, expires_at)
        except Exception as e:
            # The fresh token is still usable for this run
            logger.warning(f"Failed to store refreshed token for user {user_id}: {e}")

        return access_token, expires_at
