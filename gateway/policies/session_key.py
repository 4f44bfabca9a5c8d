from typing import Mapping
from logging import getLogger
from starlette.requests import cookie_parser


logger = getLogger(__name__)

SESSION_COOKIE = "session"


def extract_session_key(headers: Mapping[str, str] | None) -> str | None:
    """Cache partition for a request, taken from its `session` cookie.

    A missing or unparseable cookie header means "no session"; it never fails
    the request.
    """
    if not headers:
        return None
    raw = headers.get("cookie") or next(
        (value for key, value in headers.items() if key.lower() == "cookie"), None
    )
    if not raw:
        return None
    try:
        cookies = cookie_parser(raw)
    except (ValueError, TypeError):
        logger.debug("ignoring malformed cookie header")
        return None
    session = cookies.get(SESSION_COOKIE)
    if not session:
        return None
    logger.info("session", extra={"event": "session-key-found", "session": session})
    return session
