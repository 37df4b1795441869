import json
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import Client, TestCase, override_settings

from assessment import sessions
from assessment.services import UNANSWERED_MESSAGE


class FakeRedis:
    def __init__(self) -> None:
        self.store = {}
        self.ttls = {}

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


def pick(questions, mode):
    index = -1 if mode == "worst" else 0
    return {question["id"]: [question["options"][index]["value"]] for question in questions}


class BundledDataTestCase(TestCase):
    @classmethod
    def setUpTestData(cls) -> None:
        call_command("load_assessment_data", stdout=StringIO(), stderr=StringIO())

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")


class CatalogueAPITests(BundledDataTestCase):
    def setUp(self) -> None:
        self.client = Client()

    def test_lists_tools_with_question_counts(self) -> None:
        response = self.client.get("/assessment/tools/")

        self.assertEqual(response.status_code, 200)
        tools = {entry["tool_type"]: entry["question_count"] for entry in response.json()["tools"]}
        self.assertEqual(tools, {"chatbot": 4, "image_generator": 3, "writing_assistant": 3})

    def test_returns_tool_questions_with_input_types(self) -> None:
        response = self.client.get("/assessment/tools/Chatbot/questions/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["tool_type"], "chatbot")
        questions = {question["id"]: question for question in payload["questions"]}
        self.assertEqual(list(questions), ["CHAT_01", "CHAT_02", "CHAT_03", "CHAT_04"])
        self.assertEqual(questions["CHAT_01"]["input_type"], "radio")
        self.assertEqual(len(questions["CHAT_01"]["options"]), 3)
        self.assertEqual(questions["CHAT_03"]["input_type"], "checkbox")

    def test_unknown_tool_is_not_found(self) -> None:
        response = self.client.get("/assessment/tools/spreadsheet/questions/")

        self.assertEqual(response.status_code, 404)
        self.assertIn("No questions found for spreadsheet", response.json()["error"])

    def test_context_questions_and_harm_categories(self) -> None:
        context = self.client.get("/assessment/context-questions/").json()
        categories = self.client.get("/assessment/harm-categories/").json()["categories"]

        self.assertEqual(context["count"], 4)
        self.assertEqual([category["code"] for category in categories], ["BA", "MA", "PS", "MC", "HI", "OH"])

    def test_rejects_wrong_methods(self) -> None:
        self.assertEqual(self.client.post("/assessment/tools/").status_code, 405)
        self.assertEqual(self.client.get("/assessment/sessions/").status_code, 405)
        self.assertEqual(self.client.get("/assessment/evaluate/").status_code, 405)


class EvaluateAPITests(BundledDataTestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.tool_questions = self.client.get("/assessment/tools/chatbot/questions/").json()["questions"]
        self.context_questions = self.client.get("/assessment/context-questions/").json()["questions"]

    def evaluate(self, mode, url="/assessment/evaluate/"):
        return self.post_json(
            url,
            {
                "tool": "chatbot",
                "tool_answers": pick(self.tool_questions, mode),
                "context_answers": pick(self.context_questions, mode),
            },
        )

    def test_mildest_answers_only_flag_accuracy(self) -> None:
        response = self.evaluate("first")

        self.assertEqual(response.status_code, 200)
        result = response.json()["result"]
        self.assertEqual(result["overall_risk"], "LOW")
        self.assertEqual(result["flagged_categories"], ["MA"])
        self.assertEqual(result["applied_rules"], [])

    def test_riskiest_answers_escalate_to_critical(self) -> None:
        response = self.evaluate("worst")

        self.assertEqual(response.status_code, 200)
        result = response.json()["result"]
        self.assertEqual(result["overall_risk"], "CRITICAL")
        self.assertEqual(result["harm_categories"]["PS"]["severity"], "CRITICAL")
        self.assertIn("R04", [rule["rule_id"] for rule in result["applied_rules"]])
        self.assertTrue(result["harm_categories"]["PS"]["explanation"])

    @override_settings(ASSESSMENT_NARRATIVE_ENABLED=False)
    def test_optional_summary(self) -> None:
        payload = self.evaluate("first", url="/assessment/evaluate/?narrative=1").json()

        self.assertEqual(payload["summary"]["source"], "static")
        self.assertIn("Overall risk for chatbot is LOW.", payload["summary"]["text"])

    def test_incomplete_answers_are_rejected(self) -> None:
        response = self.post_json(
            "/assessment/evaluate/",
            {"tool": "chatbot", "tool_answers": {"CHAT_01": ["A"]}, "context_answers": {}},
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], UNANSWERED_MESSAGE)
        self.assertEqual(response.json()["question_id"], "CHAT_02")

    def test_validates_request_body(self) -> None:
        response = self.client.post("/assessment/evaluate/", data="{not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)

        response = self.post_json("/assessment/evaluate/", {"tool": ""})
        self.assertEqual(response.status_code, 400)

        response = self.post_json("/assessment/evaluate/", {"tool": "spreadsheet"})
        self.assertEqual(response.status_code, 404)


@override_settings(ASSESSMENT_NARRATIVE_ENABLED=False)
class SessionFlowAPITests(BundledDataTestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.redis = FakeRedis()
        patcher = mock.patch("assessment.sessions.redis_client", return_value=self.redis)
        patcher.start()
        self.addCleanup(patcher.stop)

    def start(self, tool="chatbot"):
        response = self.post_json("/assessment/sessions/", {"tool": tool})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def complete(self, mode="worst"):
        started = self.start()
        session_id = started["session_id"]
        usage = self.post_json(f"/assessment/sessions/{session_id}/usage/", {"answers": pick(started["questions"], mode)})
        self.assertEqual(usage.status_code, 200)
        context = self.post_json(
            f"/assessment/sessions/{session_id}/context/",
            {"answers": pick(usage.json()["questions"], mode)},
        )
        self.assertEqual(context.status_code, 200)
        return session_id, context.json()

    def test_start_stores_state_with_ttl(self) -> None:
        started = self.start("Image_Generator")

        self.assertEqual(started["section"], sessions.SECTION_USAGE)
        self.assertEqual(started["tool_type"], "image_generator")
        self.assertEqual(started["question_count"], 3)
        key = f"{sessions.SESSION_PREFIX}{started['session_id']}"
        self.assertEqual(self.redis.ttls[key], sessions.SESSION_TTL)
        self.assertEqual(json.loads(self.redis.store[key])["tool_answers"], {})

    def test_start_requires_known_tool(self) -> None:
        self.assertEqual(self.post_json("/assessment/sessions/", {}).status_code, 400)
        self.assertEqual(self.post_json("/assessment/sessions/", {"tool": "robot"}).status_code, 404)
        self.assertEqual(self.redis.store, {})

    def test_full_flow_returns_results_and_report(self) -> None:
        session_id, completed = self.complete("worst")

        self.assertEqual(completed["section"], sessions.SECTION_RESULTS)
        self.assertEqual(completed["result"]["overall_risk"], "CRITICAL")

        results = self.client.get(f"/assessment/sessions/{session_id}/results/", {"narrative": "1"})
        self.assertEqual(results.status_code, 200)
        self.assertEqual(results.json()["result"], completed["result"])
        self.assertEqual(results.json()["summary"]["source"], "static")

        report = self.client.get(f"/assessment/sessions/{session_id}/report/")
        self.assertEqual(report.status_code, 200)
        self.assertContains(report, "Overall Risk Level")
        self.assertContains(report, "Risk Manifestations Across Interaction Layers")
        self.assertContains(report, "CRITICAL")

    @override_settings(ASSESSMENT_NARRATIVE_ENABLED=True)
    def test_report_only_asks_the_model_on_request(self) -> None:
        session_id, _ = self.complete("worst")
        reply = {"success": True, "content": "Model written summary."}

        with mock.patch("assessment.narrative.call_llm", return_value=reply) as call_llm:
            plain = self.client.get(f"/assessment/sessions/{session_id}/report/")
            call_llm.assert_not_called()
            narrated = self.client.get(f"/assessment/sessions/{session_id}/report/", {"narrative": "1"})

        self.assertEqual(call_llm.call_count, 1)
        self.assertContains(plain, "Overall risk for chatbot is CRITICAL.")
        self.assertNotContains(plain, "Model written summary.")
        self.assertContains(narrated, "Model written summary.")

    def test_missing_usage_answers_keep_the_session_in_place(self) -> None:
        started = self.start()
        session_id = started["session_id"]

        response = self.post_json(f"/assessment/sessions/{session_id}/usage/", {"answers": {"CHAT_01": "A"}})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], UNANSWERED_MESSAGE)
        detail = self.client.get(f"/assessment/sessions/{session_id}/").json()
        self.assertEqual(detail["section"], sessions.SECTION_USAGE)

    def test_steps_out_of_order_conflict(self) -> None:
        started = self.start()
        session_id = started["session_id"]

        context = self.post_json(f"/assessment/sessions/{session_id}/context/", {"answers": {}})
        results = self.client.get(f"/assessment/sessions/{session_id}/results/")
        report = self.client.get(f"/assessment/sessions/{session_id}/report/")

        self.assertEqual(context.status_code, 409)
        self.assertEqual(results.status_code, 409)
        self.assertEqual(report.status_code, 409)

    def test_resubmitting_usage_clears_previous_result(self) -> None:
        session_id, _ = self.complete("worst")
        questions = self.client.get("/assessment/tools/chatbot/questions/").json()["questions"]

        response = self.post_json(f"/assessment/sessions/{session_id}/usage/", {"answers": pick(questions, "first")})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["section"], sessions.SECTION_CONTEXT)
        self.assertEqual(response.json()["context_answers"], {})
        self.assertEqual(self.client.get(f"/assessment/sessions/{session_id}/results/").status_code, 409)

    def test_reset_removes_the_session(self) -> None:
        session_id, _ = self.complete("first")

        deleted = self.client.delete(f"/assessment/sessions/{session_id}/")

        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json()["section"], sessions.SECTION_TOOL_SELECTION)
        self.assertEqual(self.client.get(f"/assessment/sessions/{session_id}/").status_code, 404)
        self.assertEqual(self.client.delete(f"/assessment/sessions/{session_id}/").status_code, 404)

    def test_corrupt_state_conflicts(self) -> None:
        self.redis.set(f"{sessions.SESSION_PREFIX}broken", "{not json")

        with self.assertLogs("assessment.sessions", level="WARNING"):
            response = self.client.get("/assessment/sessions/broken/")

        self.assertEqual(response.status_code, 409)


class SessionStorageUnavailableTests(BundledDataTestCase):
    def setUp(self) -> None:
        self.client = Client()

    @override_settings(REDIS_URL="")
    def test_missing_redis_url_is_service_unavailable(self) -> None:
        with self.assertLogs("assessment.views", level="ERROR"):
            response = self.post_json("/assessment/sessions/", {"tool": "chatbot"})

        self.assertEqual(response.status_code, 503)
        self.assertFalse(response.json()["success"])

    def test_catalogue_does_not_need_redis(self) -> None:
        with mock.patch("assessment.sessions.redis_client") as redis_client:
            response = self.client.get("/assessment/tools/")

        self.assertEqual(response.status_code, 200)
        redis_client.assert_not_called()
