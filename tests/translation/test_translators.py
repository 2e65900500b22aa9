import unittest
from unittest.mock import patch

from report_ui_bridge.translation import translators
from report_ui_bridge.translation.tool_results import ToolKind, ToolResult, TranslationContext
from report_ui_bridge.translation.translators import ResultTranslator


def _kinds(actions) -> list[str]:
    return [a.kind_name for a in actions]


class ResultTranslatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.translator = ResultTranslator(TranslationContext(session_id="s1"))

    def _translate(self, tool: str, result) -> list:
        return self.translator.translate(ToolResult(tool=tool, result=result))

    def test_fill_report_sets_fields_then_previews(self) -> None:
        actions = self._translate("fill_report", {"data": {"title": "Scaffold", "site": "North"}})

        self.assertEqual(["set_fields", "show_toast", "open_panel"], _kinds(actions))
        self.assertEqual({"title": "Scaffold", "site": "North"}, actions[0].payload["fields"])
        self.assertEqual("fill_report", actions[0].payload["source"])
        self.assertEqual("preview", actions[2].payload["panel"])

    def test_fill_report_without_data_only_toasts(self) -> None:
        self.assertEqual(["show_toast"], _kinds(self._translate("fill_report", {})))
        self.assertEqual(["show_toast"], _kinds(self._translate("fill_report", "not a mapping")))

    def test_validate_report_success(self) -> None:
        actions = self._translate("validate_report_data", {"valid": True})

        self.assertEqual(["show_toast"], _kinds(actions))
        self.assertEqual("success", actions[0].payload["type"])

    def test_validate_report_failure_highlights_fields(self) -> None:
        actions = self._translate(
            "validate_report_data",
            {"valid": False, "errors": [{"field": "title", "message": "required"}, {"message": "general"}]},
        )

        self.assertEqual(["highlight_field", "show_toast"], _kinds(actions))
        self.assertEqual("title", actions[0].payload["field"])
        self.assertEqual("required", actions[0].payload["message"])
        self.assertEqual("Validation failed: 2 error(s) found.", actions[1].payload["message"])
        self.assertEqual("error", actions[1].payload["type"])

    def test_render_pdf_reports_progress_and_download(self) -> None:
        actions = self._translate("render_pdf", {"url": "/files/r.pdf", "filename": "r.pdf"})

        self.assertEqual(["start_pdf_render", "update_progress", "end_pdf_render"], _kinds(actions))
        self.assertEqual(0, actions[0].payload["progress"])
        self.assertEqual(50, actions[1].payload["progress"])
        self.assertEqual("/files/r.pdf", actions[2].payload["downloadUrl"])

    def test_render_pdf_without_url_stops_at_progress(self) -> None:
        self.assertEqual(["start_pdf_render", "update_progress"], _kinds(self._translate("render_pdf", {})))

    def test_law_content_inserts_citation(self) -> None:
        actions = self._translate("get_law_content", {"content": "Art. 5 ...", "article": "5"})

        self.assertEqual(["insert_law_citation", "show_toast"], _kinds(actions))
        self.assertEqual("Related law", actions[0].payload["lawName"])
        self.assertEqual("5", actions[0].payload["article"])
        self.assertEqual([], self._translate("get_law_content", {"content": ""}))

    def test_web_snapshot_inserts_summary(self) -> None:
        actions = self._translate("web_snapshot", {"summary": "Page says hi", "url": "https://example.org"})

        self.assertEqual("Web snapshot", actions[0].payload["lawName"])
        self.assertEqual("https://example.org", actions[0].payload["source"])
        self.assertEqual([], self._translate("web_snapshot", {}))

    def test_upload_image_sets_photo_field(self) -> None:
        actions = self._translate("upload_image", {"url": "/img/1.png", "width": 640, "height": 480, "format": "png"})

        self.assertEqual(["set_field", "show_toast"], _kinds(actions))
        payload = actions[0].payload
        self.assertEqual("safety_photo", payload["field"])
        self.assertEqual("image", payload["type"])
        self.assertEqual({"width": 640, "height": 480, "format": "png", "size": None}, payload["metadata"])

    def test_unknown_tool_gets_completion_toast(self) -> None:
        actions = self._translate("custom_tool", {"anything": 1})

        self.assertEqual("custom_tool completed.", actions[0].payload["message"])

    def test_failed_result_becomes_error_toast(self) -> None:
        failed = self.translator.translate(ToolResult(tool="render_pdf", success=False, error="boom"))
        unknown = self.translator.translate({"tool": "render_pdf", "success": False})

        self.assertEqual("render_pdf failed: boom", failed[0].payload["message"])
        self.assertEqual("error", failed[0].payload["type"])
        self.assertEqual("render_pdf failed: Unknown error", unknown[0].payload["message"])

    def test_handler_errors_yield_no_actions(self) -> None:
        def explode(result, tool, context):
            raise ValueError("bad result")

        with patch.dict(translators.HANDLERS, {ToolKind.GENERIC: explode}):
            self.assertEqual([], self._translate("custom_tool", {}))

    def test_update_context_ignores_unknown_keys(self) -> None:
        self.translator.update_context(user_id="u1", current_form_data={"title": "x"}, colour="blue")

        context = self.translator.context
        self.assertEqual("s1", context.session_id)
        self.assertEqual("u1", context.user_id)
        self.assertEqual({"title": "x"}, context.current_form_data)
        self.assertFalse(hasattr(context, "colour"))

    def test_translation_is_deterministic(self) -> None:
        result = ToolResult(
            tool="validate_report_data",
            result={"valid": False, "errors": [{"field": "title", "message": "required"}]},
        )

        first = self.translator.translate(result)
        second = self.translator.translate(result)

        self.assertEqual(_kinds(first), _kinds(second))
        self.assertEqual([sorted(a.payload) for a in first], [sorted(a.payload) for a in second])
        self.assertEqual([a.payload["message"] for a in first], [a.payload["message"] for a in second])

    def test_every_tool_kind_has_a_handler(self) -> None:
        self.assertEqual(set(ToolKind), set(translators.HANDLERS))


if __name__ == "__main__":
    unittest.main()
