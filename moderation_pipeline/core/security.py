"""
Security utilities and input validation for the moderation pipeline.

Identity itself is established upstream: the gateway in front of this service
authenticates the session and forwards the caller as ``X-User-Id`` and
``X-User-Role`` headers. This module only reads those and validates input.
"""

import re
import hashlib
from dataclasses import dataclass
from typing import Dict, Any, Optional, Tuple
from fastapi import Header, Request
from moderation_pipeline.core.config import settings
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.exceptions import (
    AuthenticationRequired,
    ContentTooLargeException,
    Unauthorized,
    ValidationException
)

MAX_REASON_LENGTH = 200
MAX_MESSAGE_LENGTH = 5000


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""

    user_id: str
    role: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role is not None and self.role.lower() in settings.staff_roles


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """
    FastAPI dependency resolving the caller identity.

    Raises:
        AuthenticationRequired: If the gateway did not forward an identity
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequired()
    return Actor(user_id=x_user_id.strip(), role=x_user_role)


def require_staff(actor: Actor) -> None:
    """Raise Unauthorized unless the actor carries a staff role."""
    if not actor.is_staff:
        log_security_event("staff_only_denied", actor.user_id, {"role": actor.role})
        raise Unauthorized("Staff access required")


def validate_text_content(content: str) -> Tuple[bool, Optional[str]]:
    """
    Validate text content for size and basic security.

    Args:
        content: Text content to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not content or not content.strip():
        return False, "Content cannot be empty"

    if len(content) > settings.max_content_length:
        return False, f"Content exceeds maximum length of {settings.max_content_length} characters"

    dangerous_patterns = [
        r'<script[^>]*>.*?</script>',
        r'javascript:',
        r'vbscript:',
        r'onload\s*=',
        r'onerror\s*=',
        r'onclick\s*='
    ]

    for pattern in dangerous_patterns:
        if re.search(pattern, content, re.IGNORECASE):
            return False, "Content contains potentially dangerous patterns"

    return True, None


def ensure_valid_text(content: str, field: str = "text") -> str:
    """
    Sanitize and validate submitted text, raising on failure.

    Returns:
        The sanitized text
    """
    sanitized = sanitize_input(content)
    if len(sanitized) > settings.max_content_length:
        raise ContentTooLargeException(
            max_size=settings.max_content_length,
            actual_size=len(sanitized),
            details={"field": field}
        )
    is_valid, error_msg = validate_text_content(sanitized)
    if not is_valid:
        raise ValidationException(error_msg or "Invalid text content", field=field)
    return sanitized


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def sanitize_input(text: str) -> str:
    """
    Sanitize user input.

    Removes null bytes and control characters (newlines and tabs are kept)
    and collapses long whitespace runs.
    """
    if not text:
        return ""

    text = text.replace('\x00', '')
    text = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', text)
    text = re.sub(r'[ \t]{3,}', '  ', text)

    return text.strip()


def log_security_event(
    event_type: str,
    user_id: Optional[str],
    details: Optional[Dict[str, Any]] = None
) -> None:
    """Log security-related events such as denied staff actions."""
    logger.warning(
        f"Security event: {event_type}",
        extra={
            "event_type": event_type,
            "author_id": user_id,
            "details": details or {}
        }
    )


def create_content_hash(content: str) -> str:
    """
    Create SHA256 hash of content, used as the corpus fingerprint.

    Args:
        content: Content to hash

    Returns:
        SHA256 hash as hex string
    """
    return hashlib.sha256(content.encode('utf-8')).hexdigest()
