"""
Authentication dependencies for the LearnIQ API.

Session issuance is handled by the identity provider in front of this
service; requests arrive with ``Authorization: Bearer <token>`` where the
token identifies the learner. Scheduled jobs authenticate with the shared
cron secret instead.
"""

import hmac
from typing import Optional

from fastapi import Header

from learniq.config import settings
from learniq.common.error_handling import AuthenticationError
from learniq.common.logger import app_logger

logger = app_logger.getChild("auth")


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing authorization header")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")

    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Invalid authentication scheme")
    return token


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Resolve the current user ID from the authorization header.

    Raises:
        AuthenticationError: If the header is missing or malformed
    """
    return _bearer_token(authorization)


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> bool:
    """
    Check the cron secret with a constant-time comparison.

    Raises:
        AuthenticationError: If the secret is missing, wrong or not configured
    """
    token = _bearer_token(authorization)
    if not settings.CRON_SECRET:
        logger.warning("Rejected scheduled job call: CRON_SECRET is not configured")
        raise AuthenticationError("Scheduled jobs are disabled")
    if not hmac.compare_digest(token.encode("utf-8"), settings.CRON_SECRET.encode("utf-8")):
        logger.warning("Rejected scheduled job call with an invalid secret")
        raise AuthenticationError("Invalid cron secret")
    return True
