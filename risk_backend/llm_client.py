import logging
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from requests import RequestException

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(getattr(settings, "LLM_BASE_URL", None) and getattr(settings, "LLM_API_KEY", None))


def _extract_content(response_data: Dict[str, Any]) -> str:
    choices = response_data.get("choices")
    if not choices:
        raise KeyError("Missing 'choices' in response.")
    content = choices[0].get("message", {}).get("content")
    if content is None:
        raise KeyError("Missing 'content' in response message.")
    if isinstance(content, list):
        content = "".join(str(part) for part in content)
    return content


def call_llm(
    messages: List[Dict[str, str]],
    *,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Send one chat completion request for an assessment summary.

    The endpoint, key, model and timeout all come from the LLM_* settings.

    Returns a dictionary with keys:
    - success: whether the call succeeded.
    - content: the message text when successful.
    - error: a human-readable message when unsuccessful.
    """

    if not is_configured():
        return {"success": False, "error": "LLM connection is not configured."}

    url = f"{settings.LLM_BASE_URL.rstrip('/')}/chat/completions"
    request_payload: Dict[str, Any] = {
        "model": getattr(settings, "LLM_MODEL", "deepseek-chat"),
        "messages": messages,
        "stream": False,
    }
    if temperature is not None:
        request_payload["temperature"] = temperature
    if max_tokens is not None:
        request_payload["max_tokens"] = max_tokens

    try:
        response = requests.post(
            url,
            headers={
                "Authorization": f"Bearer {settings.LLM_API_KEY}",
                "Content-Type": "application/json",
            },
            json=request_payload,
            timeout=getattr(settings, "LLM_TIMEOUT", 60),
        )
        response.raise_for_status()
        content = _extract_content(response.json())
    except RequestException as exc:
        logger.exception("HTTP error when reaching language model service: %s", exc)
        return {"success": False, "error": f"Failed to reach language model service ({exc})."}
    except ValueError as exc:
        logger.exception("Failed to decode language model response JSON: %s", exc)
        return {"success": False, "error": f"Invalid response from language model service ({exc})."}
    except (KeyError, AttributeError, IndexError) as exc:
        logger.exception("Unexpected language model response shape: %s", exc)
        return {"success": False, "error": f"Unexpected language model service response ({exc})."}

    return {"success": True, "content": content}
