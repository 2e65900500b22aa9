import unittest

from report_ui_bridge.translation.agent_actions import derive_tool_call_actions


class DeriveToolCallActionsTests(unittest.TestCase):
    def test_fill_report_sets_fields_from_agent(self) -> None:
        actions = derive_tool_call_actions("fill_report", {"data": {"title": "Fall arrest"}})

        self.assertEqual(["set_fields"], [a.kind_name for a in actions])
        self.assertEqual("agent_fill_report", actions[0].payload["source"])

    def test_fill_report_without_data_derives_nothing(self) -> None:
        self.assertEqual([], derive_tool_call_actions("fill_report", {"data": {}}))

    def test_validation_highlights_only_on_failure(self) -> None:
        errors = [{"field": "site", "message": "missing"}]

        failed = derive_tool_call_actions("validate_report_data", {"valid": False, "errors": errors})
        passed = derive_tool_call_actions("validate_report_data", {"valid": True, "errors": errors})

        self.assertEqual(["highlight_field"], [a.kind_name for a in failed])
        self.assertEqual([], passed)

    def test_render_pdf_needs_url(self) -> None:
        self.assertEqual([], derive_tool_call_actions("render_pdf", {}))
        actions = derive_tool_call_actions("render_pdf", {"url": "/r.pdf"})
        self.assertEqual("end_pdf_render", actions[0].kind_name)

    def test_other_tools_get_completion_toast(self) -> None:
        actions = derive_tool_call_actions("get_law_content", {"content": "..."})

        self.assertEqual("get_law_content completed.", actions[0].payload["message"])


if __name__ == "__main__":
    unittest.main()
