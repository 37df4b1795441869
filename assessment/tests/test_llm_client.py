from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from risk_backend.llm_client import call_llm


def fake_response(payload):
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


@override_settings(LLM_BASE_URL="https://llm.example.com/v1/", LLM_API_KEY="secret", LLM_MODEL="test-model")
class CallLLMTests(SimpleTestCase):
    def test_posts_chat_completion_and_returns_content(self) -> None:
        reply = {"choices": [{"message": {"content": "Summary text"}}]}
        with mock.patch("risk_backend.llm_client.requests.post", return_value=fake_response(reply)) as post:
            result = call_llm([{"role": "user", "content": "hi"}], temperature=0.3, max_tokens=200)

        self.assertEqual(result, {"success": True, "content": "Summary text"})
        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://llm.example.com/v1/chat/completions")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(kwargs["json"]["model"], "test-model")
        self.assertEqual(kwargs["json"]["temperature"], 0.3)
        self.assertEqual(kwargs["json"]["max_tokens"], 200)

    def test_reports_http_failures(self) -> None:
        with mock.patch(
            "risk_backend.llm_client.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with self.assertLogs("risk_backend.llm_client", level="ERROR"):
                result = call_llm([{"role": "user", "content": "hi"}])

        self.assertFalse(result["success"])
        self.assertIn("refused", result["error"])

    def test_reports_unexpected_payloads(self) -> None:
        with mock.patch("risk_backend.llm_client.requests.post", return_value=fake_response({"choices": []})):
            with self.assertLogs("risk_backend.llm_client", level="ERROR"):
                result = call_llm([{"role": "user", "content": "hi"}])

        self.assertFalse(result["success"])

    @override_settings(LLM_BASE_URL=None)
    def test_unconfigured_client_does_not_send(self) -> None:
        with mock.patch("risk_backend.llm_client.requests.post") as post:
            result = call_llm([{"role": "user", "content": "hi"}])

        post.assert_not_called()
        self.assertEqual(result, {"success": False, "error": "LLM connection is not configured."})
