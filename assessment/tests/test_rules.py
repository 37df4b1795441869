from types import SimpleNamespace

from django.test import SimpleTestCase

from assessment.rules import (
    RuleSyntaxError,
    apply_rules,
    parse_condition,
    parse_effect,
)


def make_rule(rule_id: str, condition: str, effect: str, active: bool = True) -> SimpleNamespace:
    return SimpleNamespace(
        rule_id=rule_id,
        name=f"Rule {rule_id}",
        trigger_condition=condition,
        escalation_effect=effect,
        is_active=active,
    )


def severities(**overrides: str) -> dict:
    base = {code: "LOW" for code in ("BA", "MA", "PS", "MC", "HI", "OH")}
    base.update(overrides)
    return base


class ConditionParsingTests(SimpleTestCase):
    def test_category_and_tool_clauses(self) -> None:
        clauses = parse_condition("PS >= HIGH and tool = Chatbot")

        self.assertEqual([clause.kind for clause in clauses], ["category", "tool"])
        self.assertEqual(clauses[0].categories, ("PS",))
        self.assertEqual(clauses[0].severity, "HIGH")
        self.assertEqual(clauses[1].tool, "chatbot")

    def test_count_and_any_clauses(self) -> None:
        count_clause, = parse_condition("at least 3 categories HIGH")
        any_clause, = parse_condition("Any category >= critical")

        self.assertEqual((count_clause.kind, count_clause.count), ("count", 3))
        self.assertEqual((any_clause.kind, any_clause.severity), ("any", "CRITICAL"))

    def test_unparseable_conditions(self) -> None:
        for text in ("", "PS is bad", "something >= HIGH"):
            with self.assertRaises(RuleSyntaxError):
                parse_condition(text)

    def test_clause_evaluation(self) -> None:
        state = severities(PS="HIGH", MA="MEDIUM")

        self.assertTrue(parse_condition("PS >= MEDIUM")[0].holds(state, "chatbot"))
        self.assertFalse(parse_condition("PS == MEDIUM")[0].holds(state, "chatbot"))
        self.assertTrue(parse_condition("MA or PS >= HIGH")[0].holds(state, "chatbot"))
        self.assertFalse(parse_condition("2+ categories >= HIGH")[0].holds(state, "chatbot"))
        self.assertTrue(parse_condition("2+ categories >= MEDIUM")[0].holds(state, "chatbot"))
        self.assertFalse(parse_condition("tool is image_generator")[0].holds(state, "chatbot"))

    def test_unsupported_comparisons_are_rejected(self) -> None:
        for text in (
            "PS <= MEDIUM",
            "PS < HIGH",
            "PS > MEDIUM",
            "PS != HIGH",
            "PS is not HIGH",
            "PS below HIGH",
            "PS under HIGH",
            "tool is not chatbot",
            "tool != chatbot",
            "PS HIGH",
        ):
            with self.subTest(text=text), self.assertRaises(RuleSyntaxError):
                parse_condition(text)

    def test_lowercase_codes_and_levels(self) -> None:
        clause, = parse_condition("ps or mc >= high")

        self.assertEqual(clause.categories, ("PS", "MC"))
        self.assertEqual(parse_effect("escalate ps to critical").categories, ("PS",))

    def test_exactly_applies_to_count_or_level(self) -> None:
        state = severities(PS="CRITICAL", MA="HIGH", MC="HIGH")

        exact_count, = parse_condition("exactly 2 categories >= HIGH")
        exact_level, = parse_condition("PS is exactly HIGH")

        self.assertTrue(exact_count.exact_count)
        self.assertFalse(exact_count.exact)
        self.assertFalse(exact_count.holds(state, "chatbot"))
        self.assertTrue(exact_count.holds(severities(PS="CRITICAL", MA="HIGH"), "chatbot"))
        self.assertTrue(exact_level.exact)
        self.assertFalse(exact_level.holds(state, "chatbot"))


class EffectParsingTests(SimpleTestCase):
    def test_target_level(self) -> None:
        effect = parse_effect("Escalate PS and MC to CRITICAL")
        self.assertEqual(effect.categories, ("PS", "MC"))
        self.assertEqual(effect.target, "CRITICAL")

    def test_last_level_is_target(self) -> None:
        self.assertEqual(parse_effect("Raise LOW BA to MEDIUM").target, "MEDIUM")

    def test_step_forms(self) -> None:
        self.assertEqual(parse_effect("OH +1").steps, 1)
        self.assertEqual(parse_effect("Increase HI by 2").steps, 2)
        self.assertEqual(parse_effect("Escalate MA").steps, 1)

    def test_all_categories(self) -> None:
        effect = parse_effect("all categories +1")
        self.assertEqual(len(effect.categories), 6)

    def test_unparseable_effects(self) -> None:
        for text in ("", "do something", "PS sideways"):
            with self.assertRaises(RuleSyntaxError):
                parse_effect(text)


class ApplyRulesTests(SimpleTestCase):
    def test_rules_apply_in_order_and_see_earlier_changes(self) -> None:
        state = severities(PS="HIGH", MC="HIGH")
        rules = [
            make_rule("R1", "PS >= HIGH AND MC >= HIGH", "Escalate PS and MC to CRITICAL"),
            make_rule("R2", "any category >= CRITICAL", "OH +1"),
        ]

        applied = apply_rules(rules, state, "chatbot")

        self.assertEqual([rule.rule_id for rule in applied], ["R1", "R2"])
        self.assertEqual(applied[0].changes, {"PS": ("HIGH", "CRITICAL"), "MC": ("HIGH", "CRITICAL")})
        self.assertEqual(state["OH"], "MEDIUM")

    def test_effects_never_lower_severity(self) -> None:
        state = severities(PS="CRITICAL")

        applied = apply_rules([make_rule("R1", "PS >= HIGH", "Set PS to MEDIUM")], state, "chatbot")

        self.assertEqual(state["PS"], "CRITICAL")
        self.assertEqual(applied[0].changes, {})

    def test_step_effect_is_clamped(self) -> None:
        state = severities(HI="HIGH")

        apply_rules([make_rule("R1", "HI >= HIGH", "HI +3")], state, "chatbot")

        self.assertEqual(state["HI"], "CRITICAL")

    def test_inactive_and_malformed_rules_are_skipped(self) -> None:
        state = severities(PS="HIGH")
        rules = [
            make_rule("OFF", "PS >= HIGH", "PS +1", active=False),
            make_rule("BAD", "whenever", "PS +1"),
        ]

        with self.assertLogs("assessment.rules", level="WARNING") as captured:
            applied = apply_rules(rules, state, "chatbot")

        self.assertEqual(applied, [])
        self.assertEqual(state["PS"], "HIGH")
        self.assertTrue(any("BAD" in line for line in captured.output))

    def test_rules_with_unsupported_comparisons_never_fire(self) -> None:
        state = severities(PS="CRITICAL")

        with self.assertLogs("assessment.rules", level="WARNING") as captured:
            applied = apply_rules([make_rule("LTE", "PS <= MEDIUM", "OH +1")], state, "chatbot")

        self.assertEqual(applied, [])
        self.assertEqual(state["OH"], "LOW")
        self.assertIn("unsupported comparison", captured.output[0])

    def test_lowercase_rule_applies(self) -> None:
        state = severities(PS="HIGH")

        applied = apply_rules([make_rule("R", "ps >= high", "escalate ps to critical")], state, "chatbot")

        self.assertEqual(applied[0].changes, {"PS": ("HIGH", "CRITICAL")})
        self.assertEqual(state["PS"], "CRITICAL")

    def test_tool_specific_rule(self) -> None:
        state = severities(MA="HIGH")
        rule = make_rule("R2", "tool = chatbot AND MA >= HIGH", "Increase HI by 1")

        self.assertEqual(apply_rules([rule], dict(state), "writing_assistant"), [])
        applied = apply_rules([rule], state, "Chatbot")
        self.assertEqual(applied[0].changes, {"HI": ("LOW", "MEDIUM")})
