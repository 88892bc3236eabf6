import json
import unittest

from calendar_copilot.plan_schema import (
    CreateOperation,
    DeleteOperation,
    PlanValidationError,
    UpdateOperation,
    format_instructions,
    parse_plan_text,
    validate_plan,
)


def _rules(error: PlanValidationError) -> set[tuple[str, str]]:
    return {(issue.location, issue.rule) for issue in error.issues}


class PlanSchemaTests(unittest.TestCase):
    def test_valid_plan_round_trips(self) -> None:
        data = {
            "summary": "Reshuffle the week",
            "operations": [
                {"action": "create", "title": "Prep", "date": "2024-09-09", "time": "08:00"},
                {"action": "create", "title": "Lunch", "date": "2024-09-09", "time": "12:00", "type": "social"},
                {"action": "update", "id": 1, "time": "14:00"},
                {"action": "delete", "id": 2},
            ],
        }
        plan = validate_plan(data)
        self.assertIsInstance(plan.operations[0], CreateOperation)
        self.assertIsInstance(plan.operations[2], UpdateOperation)
        self.assertIsInstance(plan.operations[3], DeleteOperation)
        self.assertEqual(plan.to_dict(), data)
        self.assertEqual(validate_plan(json.loads(json.dumps(plan.to_dict()))), plan)

    def test_empty_operations_is_valid(self) -> None:
        plan = validate_plan({"summary": "Nothing to do", "operations": []})
        self.assertEqual(plan.operations, [])

    def test_bad_date_format_rejected(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [{"action": "create", "title": "X", "date": "10/09/2024", "time": "09:00"}],
                }
            )
        self.assertIn(("operations.0.date", "string_pattern_mismatch"), _rules(ctx.exception))

    def test_out_of_range_time_rejected(self) -> None:
        for bad_time in ("24:00", "9:30", "12:60", "12:5"):
            with self.subTest(time=bad_time):
                with self.assertRaises(PlanValidationError) as ctx:
                    validate_plan({"summary": "s", "operations": [{"action": "update", "id": 1, "time": bad_time}]})
                self.assertIn(("operations.0.time", "string_pattern_mismatch"), _rules(ctx.exception))

    def test_boundary_times_accepted(self) -> None:
        plan = validate_plan(
            {
                "summary": "s",
                "operations": [
                    {"action": "update", "id": 1, "time": "00:00"},
                    {"action": "update", "id": 2, "time": "23:59"},
                ],
            }
        )
        self.assertEqual([op.time for op in plan.operations], ["00:00", "23:59"])

    def test_update_without_changes_rejected(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan({"summary": "s", "operations": [{"action": "update", "id": 1}]})
        issue = ctx.exception.issues[0]
        self.assertEqual(issue.location, "operations.0")
        self.assertEqual(issue.rule, "value_error")
        self.assertIn("at least one", issue.message)

    def test_unknown_action_rejected(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan({"summary": "s", "operations": [{"action": "archive", "id": 1}]})
        self.assertIn(("operations.0", "union_tag_invalid"), _rules(ctx.exception))

    def test_create_with_id_rejected(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [
                        {"action": "create", "id": 7, "title": "X", "date": "2024-09-10", "time": "09:00"}
                    ],
                }
            )
        self.assertIn(("operations.0.id", "extra_forbidden"), _rules(ctx.exception))

    def test_update_and_delete_require_positive_id(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [
                        {"action": "delete"},
                        {"action": "update", "id": 0, "title": "X"},
                    ],
                }
            )
        rules = _rules(ctx.exception)
        self.assertIn(("operations.0.id", "missing"), rules)
        self.assertIn(("operations.1.id", "greater_than"), rules)

    def test_ids_must_be_json_integers(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [
                        {"action": "delete", "id": True},
                        {"action": "update", "id": 1.0, "title": "X"},
                        {"action": "delete", "id": "3"},
                    ],
                }
            )
        rules = _rules(ctx.exception)
        self.assertIn(("operations.0.id", "int_type"), rules)
        self.assertIn(("operations.1.id", "int_type"), rules)
        self.assertIn(("operations.2.id", "int_type"), rules)

    def test_blank_title_and_type_rejected(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [
                        {"action": "create", "title": "   ", "date": "2024-09-10", "time": "09:00"},
                        {"action": "update", "id": 1, "title": "\t"},
                        {"action": "update", "id": 2, "type": ""},
                        {"action": "create", "title": "Ok", "date": "2024-09-10", "time": "09:00", "type": " "},
                    ],
                }
            )
        rules = _rules(ctx.exception)
        self.assertIn(("operations.0.title", "value_error"), rules)
        self.assertIn(("operations.1.title", "value_error"), rules)
        self.assertIn(("operations.2.type", "value_error"), rules)
        self.assertIn(("operations.3.type", "value_error"), rules)

    def test_date_and_time_accept_ascii_digits_only(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [
                        {"action": "create", "title": "A", "date": "２０２４-09-10", "time": "09:00"},
                        {"action": "update", "id": 1, "time": "1٣:00"},
                    ],
                }
            )
        rules = _rules(ctx.exception)
        self.assertIn(("operations.0.date", "string_pattern_mismatch"), rules)
        self.assertIn(("operations.1.time", "string_pattern_mismatch"), rules)

    def test_more_than_ten_operations_rejected(self) -> None:
        operations = [{"action": "delete", "id": index} for index in range(1, 12)]
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan({"summary": "s", "operations": operations})
        self.assertIn(("operations", "too_long"), _rules(ctx.exception))

    def test_summary_required_and_not_blank(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan({"operations": []})
        self.assertIn(("summary", "missing"), _rules(ctx.exception))
        with self.assertRaises(PlanValidationError):
            validate_plan({"summary": "   ", "operations": []})

    def test_parse_plan_text_unwraps_fenced_json(self) -> None:
        text = 'Here you go:\n```json\n{"summary": "ok", "operations": [{"action": "delete", "id": 3}]}\n```'
        plan = parse_plan_text(text)
        self.assertEqual(plan.operations[0].id, 3)

    def test_parse_plan_text_rejects_non_json(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            parse_plan_text("I moved your meeting.")
        self.assertEqual(ctx.exception.issues[0].rule, "json_invalid")

    def test_error_message_lists_every_issue(self) -> None:
        with self.assertRaises(PlanValidationError) as ctx:
            validate_plan(
                {
                    "summary": "s",
                    "operations": [
                        {"action": "create", "title": "X", "date": "bad", "time": "09:00"},
                        {"action": "update", "id": 2},
                    ],
                }
            )
        lines = str(ctx.exception).splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("operations.0.date:"))
        self.assertTrue(lines[1].startswith("operations.1:"))

    def test_format_instructions_derived_from_schema(self) -> None:
        text = format_instructions()
        self.assertIn('"summary"', text)
        self.assertIn('"operations"', text)
        self.assertIn('"maxItems": 10', text)
        for action in ("create", "update", "delete"):
            self.assertIn(f'"{action}"', text)


if __name__ == "__main__":
    unittest.main()
