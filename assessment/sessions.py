"""Redis-backed assessment state.

An assessment moves through the sections tool-selection -> usage-questions ->
context-questions -> results. Only the current section, the selected tool and
the answers given so far are kept, under a TTL; nothing is written to the
database.
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, Optional

import redis
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

SESSION_PREFIX = getattr(settings, "ASSESSMENT_SESSION_PREFIX", "assessment:session:")
SESSION_TTL = getattr(settings, "ASSESSMENT_SESSION_TTL", 60 * 60)

SECTION_TOOL_SELECTION = "tool-selection"
SECTION_USAGE = "usage-questions"
SECTION_CONTEXT = "context-questions"
SECTION_RESULTS = "results"


class AssessmentStateError(Exception):
    """Raised when a step is submitted out of order or the stored state is unusable."""


def redis_client() -> redis.Redis:
    redis_url = getattr(settings, "REDIS_URL", None)
    if not redis_url:
        raise ImproperlyConfigured("REDIS_URL is not configured in settings.")
    return redis.Redis.from_url(redis_url, decode_responses=True)


def _session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def new_session(tool_type: str) -> Dict[str, Any]:
    return {
        "session_id": uuid.uuid4().hex,
        "section": SECTION_USAGE,
        "tool_type": tool_type,
        "tool_answers": {},
        "context_answers": {},
        "result": None,
        "created_at": int(time.time()),
    }


def save_session(client: redis.Redis, session: Dict[str, Any]) -> None:
    session["updated_at"] = int(time.time())
    client.set(
        _session_key(session["session_id"]),
        json.dumps(session, ensure_ascii=True),
        ex=SESSION_TTL,
    )


def load_session(client: redis.Redis, session_id: str) -> Optional[Dict[str, Any]]:
    raw = client.get(_session_key(session_id))
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to decode assessment session %s: %s", session_id, exc)
        raise AssessmentStateError("Stored assessment could not be read. Please start again.") from exc
    if not isinstance(payload, dict) or not payload.get("tool_type"):
        raise AssessmentStateError("Stored assessment could not be read. Please start again.")
    return payload


def delete_session(client: redis.Redis, session_id: str) -> bool:
    return bool(client.delete(_session_key(session_id)))


def require_section(session: Dict[str, Any], *allowed: str) -> None:
    if session.get("section") not in allowed:
        raise AssessmentStateError(
            f"This step is not available while the assessment is at '{session.get('section')}'."
        )
