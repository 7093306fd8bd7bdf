"""
╔══════════════════════════════════════════╗
║     HELM — Test Suite: Event Bus          ║
╚══════════════════════════════════════════╝

Tests emission, bounded history, sync listeners,
action/token/task stats, and websocket fan-out
on the running loop.
"""

import unittest
from unittest.mock import AsyncMock
import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from utils.event_bus import EventBus


class TestEmission(unittest.TestCase):

    def setUp(self):
        self.bus = EventBus(max_history=100)

    def test_event_shape(self):
        self.bus.emit("agent_state", {"target_id": "T1", "state": "attaching"})
        event = self.bus.get_history()[0]
        self.assertEqual(event["type"], "agent_state")
        self.assertEqual(event["data"]["state"], "attaching")
        self.assertIn("timestamp", event)
        self.assertIn("ts_unix", event)

    def test_history_keeps_newest(self):
        bus = EventBus(max_history=3)
        for i in range(10):
            bus.emit(f"e{i}")
        self.assertEqual([e["type"] for e in bus.get_history()], ["e7", "e8", "e9"])

    def test_sync_listener_gets_matching_events_only(self):
        seen = []
        self.bus.subscribe_sync("agent_action", seen.append)
        self.bus.emit("agent_action", {"action": {"type": "click"}})
        self.bus.emit("agent_thinking", {"message": "hmm"})
        self.assertEqual(seen, [{"action": {"type": "click"}}])

    def test_unsubscribe_sync(self):
        seen = []
        self.bus.subscribe_sync("x", seen.append)
        self.bus.emit("x", {"n": 1})
        self.bus.unsubscribe_sync("x", seen.append)
        self.bus.emit("x", {"n": 2})
        self.assertEqual(len(seen), 1)

    def test_failing_listener_does_not_block_others(self):
        def bad(data):
            raise ValueError("boom")

        seen = []
        self.bus.subscribe_sync("x", bad)
        self.bus.subscribe_sync("x", seen.append)
        self.bus.emit("x", {"n": 1})
        self.assertEqual(len(seen), 1)

    def test_no_data_becomes_empty_dict(self):
        self.bus.emit("ping")
        self.assertEqual(self.bus.get_history()[0]["data"], {})


class TestStats(unittest.TestCase):

    def setUp(self):
        self.bus = EventBus()

    def test_action_results_counted_per_kind(self):
        self.bus.emit("action_result", {"success": True, "tool_name": "click"})
        self.bus.emit("action_result", {"success": True, "tool_name": "click"})
        self.bus.emit("action_result", {"success": False, "tool_name": "navigate"})
        stats = self.bus.get_stats()
        self.assertEqual(stats["actions_success"], 2)
        self.assertEqual(stats["actions_failed"], 1)
        self.assertEqual(stats["action_usage"], {"click": 2, "navigate": 1})

    def test_api_call_tokens(self):
        self.bus.emit("api_call", {"tokens_in": 1200, "tokens_out": 80, "model": "gemini"})
        self.bus.emit("api_call", {"tokens_in": 300, "tokens_out": 20, "model": "gemini"})
        self.assertEqual(self.bus.stats["total_tokens_in"], 1500)
        self.assertEqual(self.bus.stats["total_tokens_out"], 100)

    def test_task_outcomes(self):
        self.bus.emit("task_complete", {"status": "completed"})
        self.bus.emit("agent_error", {"error": "boom"})
        stats = self.bus.get_stats()
        self.assertEqual(stats["tasks_completed"], 1)
        self.assertEqual(stats["tasks_failed"], 1)
        self.assertGreaterEqual(stats["uptime_seconds"], 0)

    def test_only_completed_tasks_count_as_completed(self):
        for status in ("completed", "step_limit", "cancelled", "aborted", "cancelled"):
            self.bus.emit("task_complete", {"target_id": "T1", "status": status})
        stats = self.bus.get_stats()
        self.assertEqual(stats["tasks_completed"], 1)
        self.assertEqual(stats["task_outcomes"],
                         {"completed": 1, "step_limit": 1, "cancelled": 2, "aborted": 1})


class TestWebSocketFanOut(unittest.IsolatedAsyncioTestCase):

    async def test_subscriber_receives_json(self):
        bus = EventBus()
        ws_send = AsyncMock()
        bus.subscribe(ws_send)

        bus.emit("task_complete", {"target_id": "T1", "status": "completed"})
        await asyncio.sleep(0.05)

        ws_send.assert_awaited_once()
        payload = json.loads(ws_send.await_args.args[0])
        self.assertEqual(payload["type"], "task_complete")
        self.assertEqual(payload["data"]["target_id"], "T1")

    async def test_unsubscribed_client_gets_nothing(self):
        bus = EventBus()
        ws_send = AsyncMock()
        bus.subscribe(ws_send)
        bus.unsubscribe(ws_send)

        bus.emit("x")
        await asyncio.sleep(0.05)

        ws_send.assert_not_awaited()

    async def test_failed_send_drops_client(self):
        bus = EventBus()
        gone = AsyncMock(side_effect=ConnectionError("closed"))
        alive = AsyncMock()
        bus.subscribe(gone)
        bus.subscribe(alive)

        bus.emit("first")
        await asyncio.sleep(0.05)
        bus.emit("second")
        await asyncio.sleep(0.05)

        self.assertEqual(bus.subscribers, [alive])
        self.assertEqual(gone.await_count, 1)
        self.assertEqual(alive.await_count, 2)


class TestWithoutLoop(unittest.TestCase):

    def test_emit_outside_a_loop_still_records(self):
        bus = EventBus()
        ws_send = AsyncMock()
        bus.subscribe(ws_send)

        bus.emit("agent_state", {"state": "attaching"})

        ws_send.assert_not_called()
        self.assertEqual(len(bus.get_history()), 1)
        self.assertEqual(bus.subscribers, [ws_send])


if __name__ == "__main__":
    unittest.main()
