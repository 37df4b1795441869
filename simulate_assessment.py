#!/usr/bin/env python3
"""
Walk through the AI risk assessment against a running backend service.

Usage:
    python simulate_assessment.py --base-url http://localhost:8000 [--tool chatbot] [--answers worst]

For each selected tool the script:
1) lists the usage questions and starts an assessment session,
2) checks that an incomplete submission is rejected,
3) answers every usage and context question (first or last option),
4) prints the resulting risk profile and the summary text,
5) resets the session.

It communicates purely over HTTP, mimicking a front-end client.
"""

import argparse
import sys
from typing import Dict, Iterable, List

try:
    import requests
except ModuleNotFoundError as exc:  # pragma: no cover - runtime dependency notice
    raise SystemExit(
        "The simulate_assessment script requires the 'requests' package. "
        "Install it via `pip install requests` and rerun."
    ) from exc


TIMEOUT = 10  # seconds per request


class AssessmentClient:
    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def _request(
        self,
        method: str,
        path: str,
        expected_status: Iterable[int],
        json_payload: Dict | None = None,
    ) -> Dict:
        url = f"{self.base_url}{path}"
        response = requests.request(
            method=method,
            url=url,
            json=json_payload,
            timeout=TIMEOUT,
        )
        if response.status_code not in expected_status:
            raise RuntimeError(
                f"{method} {path} returned {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeError(f"Response from {path} was not valid JSON.") from exc

    def tools(self) -> List[str]:
        data = self._request("GET", "/assessment/tools/", {200})
        return [entry["tool_type"] for entry in data["tools"]]

    def start(self, tool: str) -> Dict:
        data = self._request("POST", "/assessment/sessions/", {200}, {"tool": tool})
        print(f"[info] session {data['session_id']} started for {tool} ({data['question_count']} questions)")
        return data

    def submit_usage(self, session_id: str, answers: Dict[str, List[str]], expected=(200,)) -> Dict:
        return self._request(
            "POST", f"/assessment/sessions/{session_id}/usage/", set(expected), {"answers": answers}
        )

    def submit_context(self, session_id: str, answers: Dict[str, List[str]]) -> Dict:
        return self._request(
            "POST", f"/assessment/sessions/{session_id}/context/", {200}, {"answers": answers}
        )

    def results(self, session_id: str) -> Dict:
        return self._request("GET", f"/assessment/sessions/{session_id}/results/?narrative=1", {200})

    def reset(self, session_id: str) -> None:
        self._request("DELETE", f"/assessment/sessions/{session_id}/", {200})
        print(f"[info] session {session_id} reset")


def pick_answers(questions: List[Dict], mode: str) -> Dict[str, List[str]]:
    index = -1 if mode == "worst" else 0
    return {question["id"]: [question["options"][index]["value"]] for question in questions}


def run_flow(client: AssessmentClient, tool: str, mode: str) -> None:
    started = client.start(tool)
    session_id = started["session_id"]

    incomplete = client.submit_usage(session_id, {}, expected=(400,))
    print(f"[info] incomplete answers rejected: {incomplete['error']}")

    context = client.submit_usage(session_id, pick_answers(started["questions"], mode))
    completed = client.submit_context(session_id, pick_answers(context["questions"], mode))
    result = completed["result"]

    print(f"[result] {tool}: overall risk {result['overall_risk']}")
    for code in result["flagged_categories"]:
        category = result["harm_categories"][code]
        print(f"         {code} {category['name']}: {category['severity']} ({category['risk_count']} risk(s))")
    for rule in result["applied_rules"]:
        print(f"         rule {rule['rule_id']} applied: {rule['changes']}")

    summary = client.results(session_id).get("summary", {})
    print(f"[summary:{summary.get('source')}] {summary.get('text')}")
    client.reset(session_id)


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate complete risk assessments over HTTP.")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Backend base URL")
    parser.add_argument("--tool", action="append", help="Tool type to assess (default: every tool)")
    parser.add_argument(
        "--answers",
        choices=("first", "worst"),
        default="worst",
        help="Pick the first or the last option of every question (default: worst)",
    )
    args = parser.parse_args()

    client = AssessmentClient(args.base_url)
    try:
        tools = args.tool or client.tools()
        if not tools:
            print("[error] no tool types available; load the assessment data first.", file=sys.stderr)
            return 1
        for tool in tools:
            run_flow(client, tool, args.answers)
    except (RuntimeError, requests.RequestException) as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
