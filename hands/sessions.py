"""
╔══════════════════════════════════════════╗
║       HELM — Debugging Session Manager   ║
╚══════════════════════════════════════════╝

Binds each target (page/tab) to exactly one CDP session.
Every page-level command goes through send(), which refuses
to run against a target that has no attached session.
"""

import logging

from hands.cdp import CDPError

logger = logging.getLogger("HELM")


class SessionError(RuntimeError):
    """Attach/detach rejected, or a command issued without a session."""


class SessionManager:
    """Owns the target_id → CDP session_id table."""

    def __init__(self, cdp):
        self.cdp = cdp
        self._sessions = {}   # target_id → session_id

    def is_attached(self, target_id):
        return target_id in self._sessions

    async def attach(self, target_id):
        """Attach a debugging session to a target. Must precede every other command."""
        if target_id in self._sessions:
            raise SessionError(f"Another debugger session is already attached to target {target_id}")
        try:
            result = await self.cdp.send("Target.attachToTarget", {"targetId": target_id, "flatten": True})
        except CDPError as e:
            raise SessionError(f"Cannot attach to target {target_id}: {e}") from e
        self._sessions[target_id] = result["sessionId"]
        logger.info(f"  🔗 Attached to target {target_id}")
        return result["sessionId"]

    async def detach(self, target_id):
        """Release the target's session. Detaching an unattached target is a no-op."""
        session_id = self._sessions.pop(target_id, None)
        if session_id is None:
            return
        try:
            await self.cdp.send("Target.detachFromTarget", {"sessionId": session_id})
        except CDPError as e:
            raise SessionError(f"Cannot detach from target {target_id}: {e}") from e
        logger.info(f"  🔓 Detached from target {target_id}")

    async def send(self, target_id, method, params=None):
        """Send a page-level command through the target's session."""
        session_id = self._sessions.get(target_id)
        if session_id is None:
            raise SessionError(f"No debugging session attached to target {target_id}")
        return await self.cdp.send(method, params, session_id=session_id)

    async def main_frame_id(self, target_id):
        """Get the main frame id of the target's page."""
        result = await self.send(target_id, "Page.getFrameTree")
        return result["frameTree"]["frame"]["id"]

    async def target_info(self, target_id):
        """Browser-level target description: url, title, type."""
        result = await self.cdp.send("Target.getTargetInfo", {"targetId": target_id})
        return result.get("targetInfo", {})
