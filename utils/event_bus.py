"""
╔══════════════════════════════════════════╗
║       HELM — Event Bus                   ║
╚══════════════════════════════════════════╝

Every agent state change, model thought and action result
is emitted here. Events are kept in a bounded history, sent
to the control server's websocket clients, and handed to
in-process listeners. All callers share one asyncio loop.
"""

import json
import time
import asyncio
import logging
from datetime import datetime
from collections import deque

logger = logging.getLogger("HELM")


class EventBus:
    """History, websocket fan-out, sync listeners and running stats."""

    def __init__(self, max_history=500):
        self.subscribers = []          # async send callables
        self._sync_subs = {}           # event_type → [callable]
        self._sends = set()            # in-flight fan-out tasks
        self.history = deque(maxlen=max_history)
        self._stats = {
            "total_events": 0,
            "total_tokens_in": 0,
            "total_tokens_out": 0,
            "actions_success": 0,
            "actions_failed": 0,
            "tasks_completed": 0,
            "tasks_failed": 0,
            "task_outcomes": {},
            "start_time": time.time(),
            "action_usage": {},
        }

    @property
    def stats(self):
        return self._stats

    def emit(self, event_type, data=None):
        """Record an event and deliver it to every subscriber."""
        data = data or {}
        event = {
            "type": event_type,
            "timestamp": datetime.now().isoformat(),
            "ts_unix": time.time(),
            "data": data,
        }

        self._stats["total_events"] += 1
        self._update_stats(event_type, data)
        self.history.append(event)

        if self.subscribers:
            self._fan_out(json.dumps(event, default=str))

        # In-process listeners (CLI progress output)
        for cb in list(self._sync_subs.get(event_type, [])):
            try:
                cb(data)
            except Exception as e:
                logger.debug(f"  Listener for {event_type} failed: {e}")

    def _fan_out(self, message):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # No loop, no websocket clients to reach

        for ws_send in list(self.subscribers):
            task = loop.create_task(ws_send(message))
            self._sends.add(task)
            task.add_done_callback(lambda t, s=ws_send: self._send_done(t, s))

    def _send_done(self, task, ws_send):
        self._sends.discard(task)
        if not task.cancelled() and task.exception() is not None:
            # Client went away
            self.unsubscribe(ws_send)

    def _update_stats(self, event_type, data):
        if event_type == "action_result":
            if data.get("success"):
                self._stats["actions_success"] += 1
            else:
                self._stats["actions_failed"] += 1
            action = data.get("tool_name", "unknown")
            self._stats["action_usage"][action] = self._stats["action_usage"].get(action, 0) + 1

        elif event_type == "api_call":
            self._stats["total_tokens_in"] += data.get("tokens_in", 0)
            self._stats["total_tokens_out"] += data.get("tokens_out", 0)

        elif event_type == "task_complete":
            status = data.get("status", "unknown")
            outcomes = self._stats["task_outcomes"]
            outcomes[status] = outcomes.get(status, 0) + 1
            if status == "completed":
                self._stats["tasks_completed"] += 1

        elif event_type == "agent_error":
            self._stats["tasks_failed"] += 1

    def subscribe(self, ws_send):
        """Add a websocket client (an async callable taking one JSON string)."""
        self.subscribers.append(ws_send)

    def unsubscribe(self, ws_send):
        if ws_send in self.subscribers:
            self.subscribers.remove(ws_send)

    def subscribe_sync(self, event_type, callback):
        """Call `callback(data)` inline from emit() for every `event_type` event."""
        self._sync_subs.setdefault(event_type, []).append(callback)

    def unsubscribe_sync(self, event_type, callback):
        listeners = self._sync_subs.get(event_type, [])
        if callback in listeners:
            listeners.remove(callback)

    def get_history(self):
        """All stored events, oldest first, for replay to new clients."""
        return list(self.history)

    def get_stats(self):
        stats = dict(self._stats)
        stats["uptime_seconds"] = time.time() - stats["start_time"]
        return stats


# Singleton
event_bus = EventBus()
