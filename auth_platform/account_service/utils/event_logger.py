"""
Logging setup and authentication event log lines.
"""
import logging
import os
import sys
from typing import Optional

from ..config import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"

ALLOWED_EVENT_TYPES = {
    "login_success",
    "login_failure",
    "signup",
    "password_change",
    "password_reset_request",
    "password_reset",
}

WARNING_EVENT_TYPES = {"login_failure"}


def configure_logging(settings: Settings) -> None:
    """
    Configure root logging: stdout always, plus LOG_DIR/auth_events.log when
    LOG_DIR is set and writable.
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if settings.LOG_DIR:
        try:
            os.makedirs(settings.LOG_DIR, exist_ok=True)
            handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, "auth_events.log")))
        except OSError as e:
            print(f"WARNING: Could not set up file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def log_auth_event(
    event_type: str,
    user_id: Optional[int],
    email: Optional[str],
    **metadata,
) -> None:
    """
    Write one authentication event line.

    Args:
        event_type: One of ALLOWED_EVENT_TYPES
        user_id: Id of the affected user, if known
        email: Email of the affected user, if known
        metadata: Extra key=value pairs appended to the line

    Raises:
        ValueError: If event_type is invalid
    """
    if event_type not in ALLOWED_EVENT_TYPES:
        raise ValueError(
            f"Invalid event_type '{event_type}'. Must be one of: {', '.join(sorted(ALLOWED_EVENT_TYPES))}"
        )

    level = logging.WARNING if event_type in WARNING_EVENT_TYPES else logging.INFO
    extra = "".join(f" {key}={value}" for key, value in sorted(metadata.items()))
    logger.log(level, "AUTH %s user_id=%s email=%s%s", event_type, user_id, email, extra)
