import json
import logging
from typing import Any, Dict, Optional, Tuple

import redis
from django.core.exceptions import ImproperlyConfigured
from django.http import HttpRequest, JsonResponse
from django.shortcuts import render
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from . import sessions
from .models import HarmCategory
from .narrative import build_summary, static_summary
from .services import (
    AnswerValidationError,
    UnknownToolError,
    evaluate_assessment,
    get_context_questions,
    get_tool_questions,
    list_tool_types,
    validate_answers,
)
from .taxonomy import HARM_CATEGORIES, harm_category_name

logger = logging.getLogger(__name__)

TRUE_PARAMS = {"1", "true", "yes", "on"}


def _json_error(message: str, status: int = 400, **extra: Any) -> JsonResponse:
    payload: Dict[str, Any] = {"success": False, "error": message}
    payload.update(extra)
    return JsonResponse(payload, status=status, json_dumps_params={"ensure_ascii": False})


def _json_ok(payload: Dict[str, Any]) -> JsonResponse:
    return JsonResponse({"success": True, **payload}, json_dumps_params={"ensure_ascii": False})


def _parse_request_body(request: HttpRequest) -> Dict[str, Any]:
    if request.content_type and "application/json" in request.content_type:
        if not request.body:
            return {}
        try:
            payload = json.loads(request.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AnswerValidationError(f"Request body is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise AnswerValidationError("Request body must be a JSON object.")
        return payload
    if request.method == "POST":
        return {key: values if len(values) > 1 else values[0] for key, values in request.POST.lists()}
    return {}


def _validation_error(exc: AnswerValidationError) -> JsonResponse:
    extra = {"question_id": exc.question_id} if exc.question_id else {}
    return _json_error(str(exc), status=400, **extra)


def _open_client() -> Tuple[Optional[redis.Redis], Optional[JsonResponse]]:
    try:
        return sessions.redis_client(), None
    except (redis.RedisError, ImproperlyConfigured) as exc:
        logger.exception("Failed to create Redis client: %s", exc)
        return None, _json_error("Assessment storage is temporarily unavailable. Please try again later.", 503)


def _load(client: redis.Redis, session_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[JsonResponse]]:
    try:
        session = sessions.load_session(client, session_id)
    except redis.RedisError as exc:
        logger.exception("Failed to load assessment session %s: %s", session_id, exc)
        return None, _json_error("Unable to read the assessment. Please try again later.", 500)
    except sessions.AssessmentStateError as exc:
        return None, _json_error(str(exc), 409)
    if session is None:
        return None, _json_error("Assessment not found or expired.", 404)
    return session, None


def _save(client: redis.Redis, session: Dict[str, Any]) -> Optional[JsonResponse]:
    try:
        sessions.save_session(client, session)
    except redis.RedisError as exc:
        logger.exception("Failed to store assessment session %s: %s", session.get("session_id"), exc)
        return _json_error("Unable to save the assessment. Please try again later.", 500)
    return None


def _session_payload(session: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "session_id": session["session_id"],
        "section": session["section"],
        "tool_type": session["tool_type"],
        "tool_answers": session.get("tool_answers", {}),
        "context_answers": session.get("context_answers", {}),
        "expires_in": sessions.SESSION_TTL,
    }


@require_GET
def tool_list(request: HttpRequest) -> JsonResponse:
    tools = list_tool_types()
    return _json_ok({"count": len(tools), "tools": tools})


@require_GET
def tool_questions(request: HttpRequest, tool_type: str) -> JsonResponse:
    try:
        questions = get_tool_questions(tool_type)
    except UnknownToolError as exc:
        return _json_error(str(exc), 404)
    return _json_ok(
        {
            "tool_type": questions[0].tool_type,
            "count": len(questions),
            "questions": [question.to_payload() for question in questions],
        }
    )


@require_GET
def context_questions(request: HttpRequest) -> JsonResponse:
    questions = get_context_questions()
    return _json_ok({"count": len(questions), "questions": [question.to_payload() for question in questions]})


@require_GET
def harm_categories(request: HttpRequest) -> JsonResponse:
    stored = {category.code: category.to_payload() for category in HarmCategory.objects.all()}
    categories = [
        stored.get(code) or {"code": code, "name": harm_category_name(code), "description": "", "examples": ""}
        for code in HARM_CATEGORIES
    ]
    return _json_ok({"categories": categories})


@csrf_exempt
@require_http_methods(["POST"])
def evaluate(request: HttpRequest) -> JsonResponse:
    """Score a complete set of answers in one request without storing anything."""
    try:
        payload = _parse_request_body(request)
        tool_type = str(payload.get("tool") or payload.get("tool_type") or "").strip()
        if not tool_type:
            return _json_error("tool must not be empty.")
        profile = evaluate_assessment(tool_type, payload.get("tool_answers"), payload.get("context_answers"))
    except AnswerValidationError as exc:
        return _validation_error(exc)
    except UnknownToolError as exc:
        return _json_error(str(exc), 404)

    result = profile.to_payload()
    response_payload: Dict[str, Any] = {"result": result}
    if str(request.GET.get("narrative", "")).lower() in TRUE_PARAMS:
        response_payload["summary"] = build_summary(result)
    return _json_ok(response_payload)


@csrf_exempt
@require_http_methods(["POST"])
def session_create(request: HttpRequest) -> JsonResponse:
    """Select a tool, start an assessment and return its usage questions."""
    try:
        payload = _parse_request_body(request)
    except AnswerValidationError as exc:
        return _validation_error(exc)

    tool_type = str(payload.get("tool") or payload.get("tool_type") or "").strip()
    if not tool_type:
        return _json_error("tool must not be empty.")
    try:
        questions = get_tool_questions(tool_type)
    except UnknownToolError as exc:
        return _json_error(str(exc), 404)

    client, error = _open_client()
    if error:
        return error

    session = sessions.new_session(questions[0].tool_type)
    error = _save(client, session)
    if error:
        return error

    logger.info("Assessment %s started for tool %s", session["session_id"], session["tool_type"])
    return _json_ok(
        {
            **_session_payload(session),
            "question_count": len(questions),
            "questions": [question.to_payload() for question in questions],
        }
    )


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
def session_detail(request: HttpRequest, session_id: str) -> JsonResponse:
    client, error = _open_client()
    if error:
        return error

    if request.method == "DELETE":
        try:
            deleted = sessions.delete_session(client, session_id)
        except redis.RedisError as exc:
            logger.exception("Failed to delete assessment session %s: %s", session_id, exc)
            return _json_error("Unable to reset the assessment. Please try again later.", 500)
        if not deleted:
            return _json_error("Assessment not found or expired.", 404)
        return _json_ok({"section": sessions.SECTION_TOOL_SELECTION})

    session, error = _load(client, session_id)
    if error:
        return error
    return _json_ok(_session_payload(session))


@csrf_exempt
@require_http_methods(["POST"])
def session_usage(request: HttpRequest, session_id: str) -> JsonResponse:
    """Store tool-specific answers and move on to the context questions."""
    client, error = _open_client()
    if error:
        return error
    session, error = _load(client, session_id)
    if error:
        return error

    try:
        sessions.require_section(
            session, sessions.SECTION_USAGE, sessions.SECTION_CONTEXT, sessions.SECTION_RESULTS
        )
        payload = _parse_request_body(request)
        questions = get_tool_questions(session["tool_type"])
        answers = validate_answers(questions, payload.get("answers"))
    except sessions.AssessmentStateError as exc:
        return _json_error(str(exc), 409)
    except AnswerValidationError as exc:
        return _validation_error(exc)
    except UnknownToolError as exc:
        return _json_error(str(exc), 404)

    session.update(
        section=sessions.SECTION_CONTEXT,
        tool_answers=answers,
        context_answers={},
        result=None,
    )
    error = _save(client, session)
    if error:
        return error

    context = get_context_questions()
    return _json_ok(
        {
            **_session_payload(session),
            "question_count": len(context),
            "questions": [question.to_payload() for question in context],
        }
    )


@csrf_exempt
@require_http_methods(["POST"])
def session_context(request: HttpRequest, session_id: str) -> JsonResponse:
    """Store context answers, calculate the risk profile and return it."""
    client, error = _open_client()
    if error:
        return error
    session, error = _load(client, session_id)
    if error:
        return error

    try:
        sessions.require_section(session, sessions.SECTION_CONTEXT, sessions.SECTION_RESULTS)
        payload = _parse_request_body(request)
        context_answers = validate_answers(get_context_questions(), payload.get("answers"))
        profile = evaluate_assessment(session["tool_type"], session.get("tool_answers"), context_answers)
    except sessions.AssessmentStateError as exc:
        return _json_error(str(exc), 409)
    except AnswerValidationError as exc:
        return _validation_error(exc)
    except UnknownToolError as exc:
        return _json_error(str(exc), 404)

    result = profile.to_payload()
    session.update(section=sessions.SECTION_RESULTS, context_answers=context_answers, result=result)
    error = _save(client, session)
    if error:
        return error

    logger.info("Assessment %s completed with overall risk %s", session_id, result["overall_risk"])
    return _json_ok({**_session_payload(session), "result": result})


def _completed_session(session_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[JsonResponse]]:
    client, error = _open_client()
    if error:
        return None, error
    session, error = _load(client, session_id)
    if error:
        return None, error
    if not session.get("result"):
        return None, _json_error("Assessment has not been completed yet.", 409)
    return session, None


@require_GET
def session_results(request: HttpRequest, session_id: str) -> JsonResponse:
    session, error = _completed_session(session_id)
    if error:
        return error
    response_payload: Dict[str, Any] = {**_session_payload(session), "result": session["result"]}
    if str(request.GET.get("narrative", "")).lower() in TRUE_PARAMS:
        response_payload["summary"] = build_summary(session["result"])
    return _json_ok(response_payload)


@require_GET
def session_report(request: HttpRequest, session_id: str):
    """Render the results page; the language model summary is only requested with ?narrative=1."""
    session, error = _completed_session(session_id)
    if error:
        return error
    result = session["result"]
    categories = result["harm_categories"]
    if str(request.GET.get("narrative", "")).lower() in TRUE_PARAMS:
        summary = build_summary(result)
    else:
        summary = {"source": "static", "text": static_summary(result)}
    context = {
        "session_id": session_id,
        "result": result,
        "overall_class": result["overall_risk"].lower(),
        "flagged": [categories[code] for code in result["flagged_categories"]],
        "layers": result["interaction_layers"],
        "summary": summary,
    }
    return render(request, "assessment/report.html", context)
