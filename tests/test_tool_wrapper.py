import asyncio
import unittest

from report_ui_bridge.bridge import UIBridge
from report_ui_bridge.channel.socket_manager import ChannelManager
from report_ui_bridge.errors import CallCancelledError, ToolNotFoundError
from report_ui_bridge.tool_wrapper import CallState, ToolInvocationWrapper, ToolWrapperConfig
from tests.fakes import FakeTransport, RecordingSleep, ScriptedTool, action_types


class _RaisingHealthHost(dict):
    async def health_check(self) -> bool:
        raise ConnectionError("server gone")


class ToolInvocationWrapperTests(unittest.TestCase):
    def setUp(self) -> None:
        self.transport = FakeTransport()
        self.channel = ChannelManager(self.transport)
        self.bridge = UIBridge(self.channel)
        self.sleep = RecordingSleep()
        asyncio.run(self.channel.join("s1"))

    def _wrapper(self, tools: dict, **config) -> ToolInvocationWrapper:
        config.setdefault("retry_delay", 10)
        return ToolInvocationWrapper(tools, self.bridge, ToolWrapperConfig(**config), sleep=self.sleep)

    def test_retries_with_exponential_backoff_until_success(self) -> None:
        tool = ScriptedTool(result={"valid": True}, failures=2)
        wrapper = self._wrapper({"validate_report_data": tool}, max_retries=3)

        result = asyncio.run(wrapper.invoke("validate_report_data", {"title": "x"}))

        self.assertEqual({"valid": True}, result)
        self.assertEqual(3, len(tool.calls))
        self.assertEqual(2, len(self.sleep.delays))
        self.assertAlmostEqual(0.01, self.sleep.delays[0])
        self.assertAlmostEqual(0.02, self.sleep.delays[1])
        metrics = wrapper.get_metrics()
        self.assertEqual(3, metrics["totalCalls"])
        self.assertEqual(1, metrics["successfulCalls"])
        self.assertEqual(2, metrics["failedCalls"])
        self.assertEqual(3, len(metrics["latencyHistory"]))

    def test_gives_up_after_max_retries(self) -> None:
        tool = ScriptedTool(failures=99, error="timeout")
        wrapper = self._wrapper({"fetch": tool}, max_retries=2)

        with self.assertRaisesRegex(RuntimeError, "timeout"):
            asyncio.run(wrapper.invoke("fetch"))

        self.assertEqual(3, len(tool.calls))
        self.assertEqual([], wrapper.list_active())

    def test_failure_is_reported_to_the_ui(self) -> None:
        wrapper = self._wrapper({"render_pdf": ScriptedTool(failures=99, error="disk full")}, max_retries=0)

        with self.assertRaises(RuntimeError):
            asyncio.run(wrapper.invoke("render_pdf", session_id="s1"))

        batch = self.transport.action_batches()[0]
        self.assertEqual(["show_toast"], action_types(batch))
        self.assertEqual("render_pdf failed: disk full", batch[0]["payload"]["message"])
        self.assertEqual("error", batch[0]["payload"]["type"])
        self.assertEqual([], self.sleep.delays)

    def test_missing_tool_is_not_retried(self) -> None:
        wrapper = self._wrapper({}, max_retries=3)

        with self.assertRaises(ToolNotFoundError):
            asyncio.run(wrapper.invoke("missing", session_id="s1"))

        self.assertEqual([], self.sleep.delays)
        message = self.transport.action_batches()[0][0]["payload"]["message"]
        self.assertEqual("missing failed: Tool 'missing' not found", message)

    def test_success_is_forwarded_and_translated(self) -> None:
        tool = ScriptedTool(result={"data": {"title": "Ladder"}})
        wrapper = self._wrapper({"fill_report": tool})

        asyncio.run(wrapper.invoke("fill_report", {"title": ""}, session_id="s1", user_id="u1"))

        raw = self.transport.events("mcp:result")[0]["data"]
        self.assertEqual("fill_report", raw["tool"])
        self.assertEqual(1, raw["sequence"])
        batch = self.transport.action_batches()[0]
        self.assertEqual(["set_fields", "show_toast", "open_panel"], action_types(batch))
        self.assertEqual([2, 3, 4], [a["sequence"] for a in batch])
        context = self.bridge.get_context("s1")
        self.assertEqual("u1", context.user_id)
        self.assertEqual({"title": ""}, context.current_form_data)
        self.assertEqual(1, wrapper.get_metrics()["uiBridgeCalls"])

    def test_no_session_means_no_ui_traffic(self) -> None:
        wrapper = self._wrapper({"fill_report": ScriptedTool()})

        asyncio.run(wrapper.invoke("fill_report"))

        self.assertEqual([], self.transport.emitted)
        self.assertEqual(0, wrapper.get_metrics()["uiBridgeCalls"])

    def test_ui_failure_does_not_fail_the_call(self) -> None:
        self.transport.fail_on_emit = True
        wrapper = self._wrapper({"fill_report": ScriptedTool(result={"data": {"a": 1}})})

        result = asyncio.run(wrapper.invoke("fill_report", session_id="s1"))

        self.assertEqual({"data": {"a": 1}}, result)
        self.assertEqual(1, wrapper.get_metrics()["successfulCalls"])

    def test_ui_bridge_can_be_switched_off(self) -> None:
        wrapper = self._wrapper({"fill_report": ScriptedTool()})
        wrapper.set_ui_bridge_enabled(False)

        asyncio.run(wrapper.invoke("fill_report", session_id="s1"))

        self.assertEqual([], self.transport.emitted)
        self.assertFalse(wrapper.get_config().enable_ui_bridge)

    def _cancel_during_backoff(self, wrapper: ToolInvocationWrapper) -> None:
        def cancel_active() -> None:
            for record in wrapper.list_active():
                self.assertTrue(wrapper.cancel(record.call_id))

        self.sleep = RecordingSleep(on_sleep=cancel_active)
        wrapper._sleep = self.sleep

    def test_cancel_during_backoff_stops_retries(self) -> None:
        tool = ScriptedTool(failures=99)
        wrapper = self._wrapper({"flaky": tool}, max_retries=5)
        self._cancel_during_backoff(wrapper)

        with self.assertRaises(CallCancelledError):
            asyncio.run(wrapper.invoke("flaky", session_id="s1"))

        self.assertEqual(1, len(tool.calls))
        self.assertEqual(1, len(self.sleep.delays))
        self.assertEqual([], self.transport.emitted)
        self.assertEqual([], wrapper.list_active())
        self.assertFalse(wrapper.cancel("unknown"))

    def test_cancelled_call_never_reports_success(self) -> None:
        tool = ScriptedTool(result={"ok": True}, failures=1)
        wrapper = self._wrapper({"flaky": tool}, max_retries=5)
        self._cancel_during_backoff(wrapper)

        with self.assertRaises(CallCancelledError):
            asyncio.run(wrapper.invoke("flaky", session_id="s1"))

        self.assertEqual(1, len(tool.calls))
        self.assertEqual([], self.transport.emitted)
        self.assertEqual(0, wrapper.get_metrics()["successfulCalls"])

    def test_result_arriving_after_cancel_is_discarded(self) -> None:
        async def slow(params):
            wrapper.cancel_all()
            return {"ok": True}

        wrapper = self._wrapper({"slow": slow})

        with self.assertRaises(CallCancelledError):
            asyncio.run(wrapper.invoke("slow", session_id="s1"))

        self.assertEqual([], self.transport.emitted)
        self.assertEqual([], self.sleep.delays)

    def test_active_calls_are_listed_while_running(self) -> None:
        seen = []

        async def inspect(params):
            seen.extend(wrapper.list_active())
            return {"ok": True}

        wrapper = self._wrapper({"inspect": inspect})
        asyncio.run(wrapper.invoke("inspect", {"a": 1}, session_id="s1"))

        self.assertEqual(1, len(seen))
        self.assertEqual("inspect", seen[0].tool)
        self.assertEqual({"a": 1}, seen[0].params)
        self.assertEqual(CallState.PENDING, seen[0].state)
        self.assertTrue(seen[0].call_id.startswith("inspect_"))
        self.assertEqual([], wrapper.list_active())

    def test_retry_count_is_tracked_on_the_record(self) -> None:
        seen = []
        tool = ScriptedTool(failures=2)

        async def observe(params):
            seen.append(wrapper.list_active()[0].retry_count)
            return await tool(params)

        wrapper = self._wrapper({"observe": observe}, max_retries=3)
        asyncio.run(wrapper.invoke("observe"))

        self.assertEqual([0, 1, 2], seen)

    def test_health_check(self) -> None:
        self.assertTrue(asyncio.run(self._wrapper({}).check_health()))
        self.assertFalse(asyncio.run(self._wrapper(_RaisingHealthHost()).check_health()))

    def test_update_config(self) -> None:
        wrapper = self._wrapper({})

        wrapper.update_config(max_retries=1)

        self.assertEqual(1, wrapper.get_config().max_retries)
        with self.assertRaises(ValueError):
            wrapper.update_config(retries=1)


if __name__ == "__main__":
    unittest.main()
