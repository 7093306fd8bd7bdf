"""
╔══════════════════════════════════════════════════════════════╗
║       HELM — Action Executor                                 ║
╠══════════════════════════════════════════════════════════════╣
║  The public action API. One coroutine per action kind; each  ║
║  composes Session Manager + Coordinate Normalizer + Input     ║
║  Synthesizer and returns an ActionResult.                    ║
║                                                              ║
║  Nothing raises past execute(): protocol errors, session     ║
║  errors and bad arguments all come back as failed results.   ║
╚══════════════════════════════════════════════════════════════╝
"""

import asyncio
import functools
import logging

from hands.actions import ActionKind, ActionResult, describe_action
from hands.input import InputSynthesizer, drag_path
from hands.page_channel import PageChannel
from hands.viewport import normalize

logger = logging.getLogger("HELM")

SCREENSHOT_SETTLE_MS = 500
DEFAULT_WAIT_MS = 500


class ActionExecutor:
    """Executes browser actions against attached targets.

    The per-kind coroutines raise on failure; execute() is the boundary that
    turns every failure into an ActionResult.
    """

    def __init__(self, sessions, page_channel=None):
        self.sessions = sessions
        self.page = page_channel or PageChannel(sessions)

    def _input(self, target_id):
        return InputSynthesizer(functools.partial(self.sessions.send, target_id))

    async def _normalize(self, target_id, x, y):
        return await normalize(self.sessions, target_id, x, y)

    async def execute(self, target_id, action):
        """Run one action. Always returns an ActionResult."""
        try:
            match action.kind:
                case ActionKind.NAVIGATE:
                    return await self.navigate(target_id, action.url)
                case ActionKind.RELOAD:
                    return await self.reload(target_id, action.ignore_cache)
                case ActionKind.GO_BACK:
                    return await self.go_back(target_id)
                case ActionKind.GO_FORWARD:
                    return await self.go_forward(target_id)
                case ActionKind.CLICK:
                    return await self.click(target_id, action.x, action.y, action.button, action.click_count)
                case ActionKind.DOUBLE_CLICK:
                    return await self.double_click(target_id, action.x, action.y)
                case ActionKind.SCROLL:
                    return await self.scroll(target_id, action.x, action.y, action.delta_x, action.delta_y)
                case ActionKind.SCROLL_DOCUMENT:
                    return await self.scroll_document(target_id, action.direction, action.magnitude)
                case ActionKind.DRAG_AND_DROP:
                    return await self.drag_and_drop(
                        target_id, action.from_x, action.from_y, action.to_x, action.to_y,
                        button=action.button, steps=action.steps, delay_ms=action.delay_ms,
                    )
                case ActionKind.TYPE_TEXT:
                    return await self.type_text(target_id, action.text, action.delay_ms)
                case ActionKind.KEY_PRESS:
                    return await self.key_press(target_id, action.key, action.delay_ms)
                case ActionKind.CAPTURE_SCREENSHOT:
                    return await self.capture_screenshot(target_id)
                case ActionKind.WAIT:
                    return await self.wait(target_id, action.time_ms)
                case _:
                    return ActionResult.failed(f"Unknown action type: {action.kind}")
        except Exception as e:
            logger.warning(f"    ⚠️ {describe_action(action)['type']} failed on {target_id}: {e}")
            return ActionResult.failed(str(e))

    # ─── Navigation ────────────────────────────────────

    async def navigate(self, target_id, url):
        await self.sessions.send(target_id, "Page.navigate", {"url": url})
        return ActionResult.ok("Sent navigation command")

    async def reload(self, target_id, ignore_cache=False):
        await self.sessions.send(target_id, "Page.reload", {"ignoreCache": ignore_cache})
        return ActionResult.ok("Sent reload command")

    async def _traverse_history(self, target_id, offset):
        history = await self.sessions.send(target_id, "Page.getNavigationHistory")
        entries = history.get("entries", [])
        index = history.get("currentIndex", 0) + offset
        if 0 <= index < len(entries):
            await self.sessions.send(target_id, "Page.navigateToHistoryEntry", {"entryId": entries[index]["id"]})
            return True
        return False

    async def go_back(self, target_id):
        moved = await self._traverse_history(target_id, -1)
        return ActionResult.ok("Sent go back command" if moved else "No previous history entry")

    async def go_forward(self, target_id):
        moved = await self._traverse_history(target_id, 1)
        return ActionResult.ok("Sent go forward command" if moved else "No next history entry")

    # ─── Mouse ─────────────────────────────────────────

    async def click(self, target_id, x, y, button="left", click_count=1):
        px, py = await self._normalize(target_id, x, y)
        await self._input(target_id).click(px, py, button, click_count)
        return ActionResult.ok("Dispatched click event")

    async def double_click(self, target_id, x, y):
        return await self.click(target_id, x, y, button="left", click_count=2)

    async def scroll(self, target_id, x, y, delta_x, delta_y):
        """Wheel at an anchor. The delta is scaled like a coordinate, so it shares the clamp."""
        px, py = await self._normalize(target_id, x, y)
        dx, dy = await self._normalize(target_id, delta_x, delta_y)
        await self._input(target_id).wheel(px, py, dx, dy)
        return ActionResult.ok("Dispatched scroll event")

    async def scroll_document(self, target_id, direction, magnitude=999):
        delta_x = delta_y = 0
        if direction in ("up", "down"):
            delta_y = magnitude
        else:
            delta_x = magnitude

        nx, ny = await self._normalize(target_id, delta_x, delta_y)
        delta_y = -ny if direction == "up" else ny
        delta_x = -nx if direction == "left" else nx

        await self.page.scroll_by(target_id, delta_x, delta_y)
        return ActionResult.ok("Attempted to scroll document")

    async def drag_and_drop(self, target_id, from_x, from_y, to_x, to_y, button="left", steps=5, delay_ms=0):
        start = await self._normalize(target_id, from_x, from_y)
        end = await self._normalize(target_id, to_x, to_y)
        path = []
        for vx, vy in drag_path(from_x, from_y, to_x, to_y, steps):
            path.append(await self._normalize(target_id, vx, vy))
        await self._input(target_id).drag(start, path, end, button, max(0, delay_ms))
        return ActionResult.ok("Dispatched drag and drop event")

    # ─── Keyboard ──────────────────────────────────────

    async def type_text(self, target_id, text, delay_ms=0):
        await self._input(target_id).type_text(text, max(0, delay_ms))
        return ActionResult.ok("Dispatched type text events")

    async def key_press(self, target_id, key, delay_ms=0):
        await self._input(target_id).key_press(key, max(0, delay_ms))
        return ActionResult.ok("Dispatched key press events")

    # ─── Observation ───────────────────────────────────

    async def capture_screenshot(self, target_id):
        """PNG of the viewport plus the page's URL and title, after a settle delay."""
        await asyncio.sleep(SCREENSHOT_SETTLE_MS / 1000)
        shot = await self.sessions.send(target_id, "Page.captureScreenshot", {"format": "png"})
        url, title = await self.page.page_info(target_id)
        return ActionResult.ok(
            "Captured screenshot",
            image_base64=shot["data"],
            page_url=url,
            page_title=title,
        )

    async def wait(self, target_id, time_ms=None):
        ms = DEFAULT_WAIT_MS if time_ms is None else max(0, time_ms)
        await asyncio.sleep(ms / 1000)
        return ActionResult.ok("Waited")
