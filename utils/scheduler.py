"""
╔══════════════════════════════════════════════════════════╗
║      HELM — Agent Scheduler                              ║
╠══════════════════════════════════════════════════════════╣
║  One agent task per target, run as an asyncio task:      ║
║    • start()   → begin a goal on a target                ║
║    • cancel()  → stop it cooperatively, wait for detach  ║
║    • state     → live view of every running session      ║
║  A target runs at most one task at a time; its entry is  ║
║  removed when the task ends, however it ends.            ║
╚══════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger("HELM")


class TaskAlreadyRunning(RuntimeError):
    """A target already has an agent task."""


@dataclass
class AgentSession:
    """Per-task state: conversation history, step counter, flags."""
    target_id: str
    goal: str
    history: list = field(default_factory=list)
    step: int = 0
    processing: bool = False
    cancel_requested: bool = False
    outcome: Optional[dict] = None
    started_at: float = field(default_factory=time.time)

    def request_cancel(self):
        self.cancel_requested = True

    def snapshot(self):
        return {
            "target_id": self.target_id,
            "goal": self.goal,
            "step": self.step,
            "processing": self.processing,
            "cancel_requested": self.cancel_requested,
            "elapsed": round(time.time() - self.started_at, 1),
        }


class AgentScheduler:
    """Runs BrowserAgent tasks keyed by target id."""

    def __init__(self, agent):
        self.agent = agent
        self._sessions = {}   # target_id → AgentSession
        self._tasks = {}      # target_id → asyncio.Task

    def start(self, target_id, goal):
        """Start a task on `target_id`. Raises TaskAlreadyRunning if one is active."""
        if target_id in self._tasks:
            raise TaskAlreadyRunning(f"Target {target_id} already has a running task")

        session = AgentSession(target_id=target_id, goal=goal)
        self._sessions[target_id] = session
        self._tasks[target_id] = asyncio.create_task(self._run(session))
        logger.info(f"📋 Task started on {target_id}: {goal[:80]}")
        return session

    async def _run(self, session):
        try:
            return await self.agent.run(session)
        finally:
            self._sessions.pop(session.target_id, None)
            self._tasks.pop(session.target_id, None)

    async def wait(self, target_id):
        """Wait for the task on `target_id` and return its outcome dict (None if idle)."""
        task = self._tasks.get(target_id)
        if task is None:
            return None
        return await task

    async def cancel(self, target_id):
        """Ask the task to stop, then wait until it has detached. Returns False if idle."""
        session = self._sessions.get(target_id)
        task = self._tasks.get(target_id)
        if session is None or task is None:
            return False
        logger.info(f"🛑 Cancelling task on {target_id}")
        session.request_cancel()
        await task
        return True

    def is_running(self, target_id):
        return target_id in self._tasks

    def active_targets(self):
        return list(self._tasks)

    def get_state(self, target_id=None):
        """Snapshot of one session, or of all of them keyed by target."""
        if target_id is not None:
            session = self._sessions.get(target_id)
            return session.snapshot() if session else None
        return {tid: s.snapshot() for tid, s in self._sessions.items()}

    async def shutdown(self):
        """Cancel every running task and wait for all of them."""
        for target_id in list(self._sessions):
            self._sessions[target_id].request_cancel()
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
