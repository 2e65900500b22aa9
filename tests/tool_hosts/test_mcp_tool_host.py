import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock

from mcp.types import TextContent

from report_ui_bridge.mcp.mcp_tool_host import McpToolHost, decode_tool_output
from report_ui_bridge.tool import resolve_tool


def _result(text: str = "", structured=None, is_error: bool = False) -> SimpleNamespace:
    content = [TextContent(type="text", text=text)] if text else []
    return SimpleNamespace(content=content, structuredContent=structured, isError=is_error)


class DecodeToolOutputTests(unittest.TestCase):
    def test_prefers_structured_content(self) -> None:
        self.assertEqual({"valid": True}, decode_tool_output(_result('{"valid": false}', structured={"valid": True})))

    def test_parses_json_text(self) -> None:
        self.assertEqual({"url": "/r.pdf"}, decode_tool_output(_result('{"url": "/r.pdf"}')))

    def test_wraps_plain_text(self) -> None:
        self.assertEqual({"text": "rendered"}, decode_tool_output(_result("rendered")))

    def test_empty_output(self) -> None:
        self.assertEqual({}, decode_tool_output(_result()))


class McpToolHostTests(unittest.TestCase):
    def setUp(self) -> None:
        self.host = McpToolHost()
        self.session = AsyncMock()

    def test_routes_calls_to_owning_session(self) -> None:
        self.session.call_tool.return_value = _result('{"data": {"title": "x"}}')
        self.host.register("reports", "fill_report", self.session)

        result = asyncio.run(resolve_tool(self.host, "fill_report")({"title": "x"}))

        self.assertEqual({"data": {"title": "x"}}, result)
        self.session.call_tool.assert_awaited_once_with("fill_report", arguments={"title": "x"})

    def test_tool_errors_raise(self) -> None:
        self.session.call_tool.return_value = _result("template missing", is_error=True)
        self.host.register("reports", "render_pdf", self.session)

        with self.assertRaisesRegex(RuntimeError, "template missing"):
            asyncio.run(self.host.get_tool("render_pdf")({}))

    def test_first_server_wins_name_conflicts(self) -> None:
        other = AsyncMock()

        self.assertTrue(self.host.register("reports", "render_pdf", self.session))
        self.assertFalse(self.host.register("pdf", "render_pdf", other))
        self.assertEqual(["render_pdf"], self.host.tool_names)

    def test_unregister_server_drops_its_tools(self) -> None:
        self.host.register("reports", "fill_report", self.session)
        self.host.register("laws", "get_law_content", AsyncMock())

        self.host.unregister_server("reports")

        self.assertEqual(["get_law_content"], self.host.tool_names)
        self.assertIsNone(self.host.get_tool("fill_report"))

    def test_health_check_pings_sessions(self) -> None:
        self.host.register("reports", "fill_report", self.session)

        self.assertTrue(asyncio.run(self.host.health_check()))
        self.session.send_ping.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
