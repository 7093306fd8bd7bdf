"""
╔══════════════════════════════════════════╗
║   HELM — Test Suite: Browser Agent Loop   ║
╚══════════════════════════════════════════╝

Drives the agent with a scripted model against the
recording session fake: full navigate-then-click run,
step ceiling, failures, abnormal stops, cancellation
before and during a step.
"""

import unittest
from unittest.mock import patch
import sys
import os

from google.genai import types

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.dirname(__file__))
from agents.browser_agent import BrowserAgent, clamp_coordinates
from brain.llm_client import EngineOutput
from hands.executor import ActionExecutor
from hands.sessions import SessionError
from utils.event_bus import EventBus
from utils.scheduler import AgentScheduler, AgentSession
from fakes import FakeSessions, SCREENSHOT_BYTES


def _output(*parts, finish_reason="STOP"):
    return EngineOutput(types.Content(role="model", parts=list(parts)), finish_reason)


def _text(text):
    return types.Part(text=text)


def _call(name, **args):
    return types.Part(function_call=types.FunctionCall(id=f"id-{name}", name=name, args=args))


class ScriptedEngine:
    """Returns the queued outputs in order; repeats the last one when exhausted."""

    model = "scripted"

    def __init__(self, *outputs, error=None):
        self.outputs = list(outputs)
        self.error = error
        self.calls = 0
        self.seen_history_lengths = []

    async def generate(self, history):
        self.calls += 1
        self.seen_history_lengths.append(len(history))
        if self.error:
            raise self.error
        if len(self.outputs) > 1:
            return self.outputs.pop(0)
        return self.outputs[0]


class AgentTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.sessions = FakeSessions(width=1000, height=800)
        self.executor = ActionExecutor(self.sessions)
        self.bus = EventBus()
        patcher = patch("hands.executor.SCREENSHOT_SETTLE_MS", 0)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _agent(self, engine, max_steps=10):
        return BrowserAgent(engine, self.sessions, self.executor, max_steps=max_steps, step_pause=0, bus=self.bus)

    def _events(self, event_type):
        return [e["data"] for e in self.bus.get_history() if e["type"] == event_type]


class TestNavigateThenClick(AgentTestCase):

    async def test_full_run(self):
        engine = ScriptedEngine(
            _output(_text("Opening the site."), _call("navigate", url="https://example.org/")),
            _output(_text("Clicking the link."), _call("click_at", x=500, y=500)),
            _output(_text("Done. The page says hello.")),
        )
        session = AgentSession(target_id="T1", goal="open example.org and click the link")

        result = await self._agent(engine).run(session)

        self.assertTrue(result["success"])
        self.assertEqual(result["status"], "completed")
        self.assertEqual(result["steps"], 3)
        self.assertEqual(result["summary"], "Done. The page says hello.")
        self.assertIs(session.outcome, result)
        self.assertFalse(session.processing)

        # Actions reached the page
        self.assertEqual(self.sessions.params_for("Page.navigate"), [{"url": "https://example.org/"}])
        pressed = [e for e in self.sessions.mouse_events() if e["type"] == "mousePressed"]
        self.assertEqual((pressed[0]["x"], pressed[0]["y"]), (500, 400))

        # History: 2 preamble + (model, results) × 2 + final model turn
        history = session.history
        self.assertEqual(len(history), 7)
        self.assertEqual(engine.seen_history_lengths, [2, 4, 6])
        for results_turn in (history[3], history[5]):
            self.assertEqual(results_turn.role, "user")
            fr = results_turn.parts[0].function_response
            self.assertEqual(fr.response["url"], "https://example.org/")
            self.assertEqual(fr.parts[0].inline_data.data, SCREENSHOT_BYTES)
        self.assertEqual(history[3].parts[0].function_response.name, "navigate")
        self.assertEqual(history[5].parts[0].function_response.id, "id-click_at")

        # Session released
        self.assertEqual(self.sessions.attach_calls, ["T1"])
        self.assertEqual(self.sessions.detach_calls, ["T1"])

        # Events
        self.assertEqual([a["action"]["type"] for a in self._events("agent_action")], ["navigate", "click"])
        self.assertEqual(len(self._events("task_complete")), 1)
        self.assertEqual(self.bus.get_stats()["actions_success"], 2)

    async def test_type_text_at_runs_three_actions_then_one_screenshot(self):
        engine = ScriptedEngine(
            _output(_call("type_text_at", x=100, y=100, text="cats", press_enter=True)),
            _output(_text("Searched.")),
        )
        session = AgentSession(target_id="T1", goal="search cats")

        await self._agent(engine).run(session)

        self.assertEqual([a["action"]["type"] for a in self._events("agent_action")],
                         ["click", "type_text", "key_press"])
        self.assertEqual(len(self.sessions.params_for("Page.captureScreenshot")), 1)

    async def test_every_call_in_a_turn_gets_a_result(self):
        engine = ScriptedEngine(
            _output(_call("open_web_browser"), _call("hover_at", x=1, y=1), _call("navigate", url="https://a.com/")),
            _output(_text("ok")),
        )
        session = AgentSession(target_id="T1", goal="go")

        await self._agent(engine).run(session)

        results = session.history[3].parts
        self.assertEqual([p.function_response.name for p in results], ["open_web_browser", "hover_at", "navigate"])
        self.assertEqual(len(self._events("agent_action")), 1)


class TestTermination(AgentTestCase):

    async def test_step_ceiling(self):
        engine = ScriptedEngine(_output(_call("click_at", x=1, y=1)))
        session = AgentSession(target_id="T1", goal="loop forever")

        result = await self._agent(engine, max_steps=3).run(session)

        self.assertFalse(result["success"])
        self.assertEqual(result["status"], "step_limit")
        self.assertEqual(result["steps"], 3)
        self.assertEqual(engine.calls, 3)
        self.assertEqual(self.sessions.detach_calls, ["T1"])
        self.assertIn("maximum steps", result["content"])

    async def test_no_candidates_completes(self):
        engine = ScriptedEngine(EngineOutput())
        session = AgentSession(target_id="T1", goal="anything")

        result = await self._agent(engine).run(session)

        self.assertEqual(result["status"], "completed")
        self.assertEqual(result["steps"], 1)
        self.assertEqual(len(session.history), 2)
        self.assertEqual(result["summary"], "Task completed successfully!")

    async def test_abnormal_finish_aborts(self):
        engine = ScriptedEngine(_output(_call("click_at", x=1, y=1), finish_reason="SAFETY"))
        session = AgentSession(target_id="T1", goal="risky")

        result = await self._agent(engine).run(session)

        self.assertFalse(result["success"])
        self.assertEqual(result["status"], "aborted")
        self.assertEqual(engine.calls, 1)

    async def test_cancel_before_first_step(self):
        engine = ScriptedEngine(_output(_call("click_at", x=1, y=1)))
        session = AgentSession(target_id="T1", goal="never mind")
        session.request_cancel()

        result = await self._agent(engine).run(session)

        self.assertEqual(result["status"], "cancelled")
        self.assertEqual(engine.calls, 0)
        self.assertEqual(self.sessions.detach_calls, ["T1"])


class CancelOnRelease(FakeSessions):
    """Requests a cancel as soon as the first mouse button is released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = None

    async def send(self, target_id, method, params=None):
        result = await super().send(target_id, method, params)
        if method == "Input.dispatchMouseEvent" and params["type"] == "mouseReleased" and self.session:
            self.session.request_cancel()
        return result


class TestCancelMidStep(AgentTestCase):

    def setUp(self):
        super().setUp()
        self.sessions = CancelOnRelease(width=1000, height=800)
        self.executor = ActionExecutor(self.sessions)

    async def test_cancel_during_type_text_at(self):
        engine = ScriptedEngine(
            _output(_call("type_text_at", x=100, y=100, text="cats", press_enter=True)),
            _output(_text("Searched for dogs.")),
        )
        scheduler = AgentScheduler(self._agent(engine))

        session = scheduler.start("T1", "search cats")
        self.sessions.session = session
        outcome = await scheduler.wait("T1")

        self.assertEqual(outcome["status"], "cancelled")
        self.assertEqual(engine.calls, 1)
        self.assertEqual(self.sessions.key_events(), [])
        self.assertEqual(self.sessions.params_for("Page.captureScreenshot"), [])
        self.assertEqual([a["action"]["type"] for a in self._events("agent_action")], ["click"])
        self.assertEqual(self.sessions.detach_calls, ["T1"])
        self.assertFalse(scheduler.is_running("T1"))

        # Target is free again
        self.sessions.session = None
        scheduler.start("T1", "search dogs")
        self.assertEqual((await scheduler.wait("T1"))["status"], "completed")
        self.assertEqual(self.sessions.attach_calls, ["T1", "T1"])


class TestFailures(AgentTestCase):

    async def test_engine_error_fails_and_detaches(self):
        engine = ScriptedEngine(error=RuntimeError("model unavailable"))
        session = AgentSession(target_id="T1", goal="x")

        result = await self._agent(engine).run(session)

        self.assertEqual(result["status"], "failed")
        self.assertEqual(result["error"], "model unavailable")
        self.assertIn("model unavailable", result["content"])
        self.assertEqual(self.sessions.detach_calls, ["T1"])
        self.assertEqual(self._events("agent_error")[0]["error"], "model unavailable")
        self.assertEqual(self._events("task_complete"), [])

    async def test_attach_failure_is_surfaced(self):
        self.sessions.attach_error = SessionError("Cannot attach to target T1: No target with given id found")
        engine = ScriptedEngine(_output(_text("unused")))
        session = AgentSession(target_id="T1", goal="x")

        result = await self._agent(engine).run(session)

        self.assertEqual(result["status"], "failed")
        self.assertIn("No target with given id found", result["error"])
        self.assertEqual(engine.calls, 0)

    async def test_detach_failure_is_swallowed(self):
        self.sessions.detach_error = SessionError("Cannot detach from target T1: gone")
        engine = ScriptedEngine(_output(_text("done")))

        result = await self._agent(engine).run(AgentSession(target_id="T1", goal="x"))

        self.assertEqual(result["status"], "completed")

    async def test_failed_action_does_not_stop_the_loop(self):
        from hands.cdp import CDPError
        self.sessions.failures["Input.dispatchMouseEvent"] = CDPError("CDP Input.dispatchMouseEvent: boom")
        engine = ScriptedEngine(_output(_call("click_at", x=1, y=1)), _output(_text("gave up")))

        result = await self._agent(engine).run(AgentSession(target_id="T1", goal="x"))

        self.assertEqual(result["status"], "completed")
        self.assertEqual(self._events("action_result")[0]["success"], False)
        self.assertEqual(self.bus.get_stats()["actions_failed"], 1)

    async def test_screenshot_failure_reports_error_in_result(self):
        from hands.cdp import CDPError
        self.sessions.failures["Page.captureScreenshot"] = CDPError("CDP Page.captureScreenshot: hidden")
        engine = ScriptedEngine(_output(_call("navigate", url="https://a.com/")), _output(_text("ok")))
        session = AgentSession(target_id="T1", goal="x")

        await self._agent(engine).run(session)

        fr = session.history[3].parts[0].function_response
        self.assertIn("hidden", fr.response["error"])
        self.assertFalse(fr.parts)


class TestClamp(AgentTestCase):

    def test_clamp_coordinates_in_place(self):
        output = _output(_call("drag_and_drop", x=1200, y=10, destination_x=999, destination_y=5000))
        clamp_coordinates(output)
        args = output.function_calls[0].args
        self.assertEqual((args["x"], args["y"], args["destination_x"], args["destination_y"]), (999, 10, 999, 999))

    async def test_out_of_range_click_lands_on_edge(self):
        engine = ScriptedEngine(_output(_call("click_at", x=1500, y=500)), _output(_text("done")))
        session = AgentSession(target_id="T1", goal="x")

        await self._agent(engine).run(session)

        pressed = [e for e in self.sessions.mouse_events() if e["type"] == "mousePressed"]
        self.assertEqual(pressed[0]["x"], 999)
        self.assertEqual(session.history[2].parts[0].function_call.args["x"], 999)


if __name__ == "__main__":
    unittest.main()
