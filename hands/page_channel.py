"""
╔══════════════════════════════════════════╗
║       HELM — Hosted-Page Side Channel    ║
╚══════════════════════════════════════════╝

Instructions that run inside the page itself instead of as
synthetic input. Whole-document scrolling has no single input
event equivalent, so it is delegated here; the same channel
answers "where is the page now" (URL + title).
"""

import json
import logging

from hands.cdp import CDPError

logger = logging.getLogger("HELM")


class PageChannel:
    """Side channel into the hosted page of an attached target."""

    def __init__(self, sessions):
        self.sessions = sessions

    async def _evaluate(self, target_id, expression):
        result = await self.sessions.send(target_id, "Runtime.evaluate", {
            "expression": expression,
            "returnByValue": True,
            "awaitPromise": False,
        })
        if result.get("exceptionDetails"):
            exc = result["exceptionDetails"]
            text = exc.get("text", "")
            if "exception" in exc:
                text = exc["exception"].get("description", text)
            raise CDPError(f"Page script failed: {text}")
        return result.get("result", {}).get("value")

    async def scroll_by(self, target_id, delta_x, delta_y):
        """Scroll the whole document by a pixel delta."""
        await self._evaluate(target_id, f"window.scrollBy({json.dumps(delta_x)}, {json.dumps(delta_y)})")

    async def page_info(self, target_id):
        """Current (url, title) of the target's page."""
        info = await self.sessions.target_info(target_id)
        return info.get("url", ""), info.get("title", "")
