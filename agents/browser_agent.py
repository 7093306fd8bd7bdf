"""
╔══════════════════════════════════════════════════════════════╗
║      HELM — Browser Agent: Screenshot-Driven Control Loop    ║
╠══════════════════════════════════════════════════════════════╣
║  attach → [ think → act → observe ] × N → detach             ║
║                                                              ║
║  Each step:                                                  ║
║    1. Ask the model with the full history                    ║
║    2. Record its turn (coordinates clamped to the grid)      ║
║    3. Translate every function call into actions, run them   ║
║       in order, then screenshot the page as the call's       ║
║       result                                                 ║
║    4. Record all results as one turn                         ║
║  Stops when the model calls nothing, stops abnormally, is    ║
║  cancelled, or the step ceiling is hit. The session is       ║
║  detached on every exit path.                                ║
╚══════════════════════════════════════════════════════════════╝
"""

import asyncio
import json
import logging

from google.genai import types

from brain.llm_client import function_response_part
from brain.prompts import initial_history
from brain.translator import translate_call
from hands.actions import CaptureScreenshot, describe_action
from hands.viewport import VIRTUAL_MAX
from utils.event_bus import event_bus

logger = logging.getLogger("HELM")

DEFAULT_MAX_STEPS = 100
DEFAULT_STEP_PAUSE = 1.0

COORDINATE_ARGS = ("x", "y", "destination_x", "destination_y")

STATUS_COMPLETED = "completed"
STATUS_ABORTED = "aborted"
STATUS_STEP_LIMIT = "step_limit"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"

_STATUS_MESSAGES = {
    STATUS_COMPLETED: "Task completed successfully!",
    STATUS_ABORTED: "Model stopped before finishing the task",
    STATUS_STEP_LIMIT: "Reached maximum steps without completion",
    STATUS_CANCELLED: "Task cancelled",
}


def clamp_coordinates(output):
    """Pull any coordinate argument above the grid back to 999, in place."""
    for call in output.function_calls:
        args = call.args or {}
        for key in COORDINATE_ARGS:
            value = args.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > VIRTUAL_MAX:
                args[key] = VIRTUAL_MAX


class BrowserAgent:
    """Drives one target through the request/execute/observe cycle."""

    def __init__(self, engine, sessions, executor, max_steps=DEFAULT_MAX_STEPS,
                 step_pause=DEFAULT_STEP_PAUSE, bus=None):
        self.engine = engine
        self.sessions = sessions
        self.executor = executor
        self.max_steps = max_steps
        self.step_pause = step_pause
        self.bus = bus or event_bus

    def _emit(self, event_type, target_id, **data):
        self.bus.emit(event_type, {"target_id": target_id, **data})

    # ── Core agent loop ──

    async def run(self, session):
        """
        Run the task held by `session` until it finishes.

        Returns:
            dict with keys:
                success (bool) — the model finished normally
                status  (str)  — completed | aborted | step_limit | cancelled | failed
                content (str)  — status message or error
                summary (str)  — the model's last reasoning text (final answer)
                steps   (int)  — steps taken
                error   (str|None)
        """
        target = session.target_id
        session.processing = True
        if not session.history:
            session.history = initial_history(session.goal)

        logger.info(f"  🌐 Browser agent on {target}: {session.goal[:80]}")
        status = None
        error = None
        summary = ""

        try:
            self._emit("agent_state", target, state="attaching")
            await self.sessions.attach(target)

            while session.step < self.max_steps:
                if session.cancel_requested:
                    status = STATUS_CANCELLED
                    break

                output = await self.step(session)
                if output.message:
                    summary = output.message

                if not session.cancel_requested:
                    await asyncio.sleep(self.step_pause)

                if session.cancel_requested:
                    status = STATUS_CANCELLED
                    break
                if output.completed:
                    status = STATUS_ABORTED if output.abnormal else STATUS_COMPLETED
                    if output.abnormal:
                        logger.warning(f"  ⚠️ [{target}] Model finished with {output.finish_reason}")
                    break
            else:
                status = STATUS_STEP_LIMIT
                logger.warning(f"  🛑 [{target}] Step ceiling ({self.max_steps}) reached")

        except Exception as e:
            status = STATUS_FAILED
            error = str(e)
            logger.error(f"  ❌ [{target}] Browser agent failed: {e}")
            self._emit("agent_error", target, error=error)
        finally:
            await self._cleanup(session)

        content = _STATUS_MESSAGES.get(status) or f"Agent failed: {error}"
        result = {
            "success": status == STATUS_COMPLETED,
            "status": status,
            "content": content,
            "summary": summary or content,
            "steps": session.step,
            "error": error,
        }
        session.outcome = result
        if status != STATUS_FAILED:
            logger.info(f"  ✅ [{target}] {content} ({session.step} steps)")
            self._emit("task_complete", target, status=status, summary=result["summary"], steps=session.step)
        return result

    async def step(self, session):
        """One think → act → observe round trip. Returns the model's EngineOutput."""
        target = session.target_id
        n = session.step + 1
        logger.info(f"  🧠 [{target}] Step {n}/{self.max_steps}")
        self._emit("agent_state", target, state="processing", message=f"Processing step {n}...")

        output = await self.engine.generate(session.history)
        self._emit("api_call", target,
                   model=getattr(self.engine, "model", "unknown"),
                   tokens_in=output.usage.input_tokens,
                   tokens_out=output.usage.output_tokens)
        clamp_coordinates(output)
        if output.content is not None:
            session.history.append(output.content)

        for text in output.texts:
            logger.debug(f"    💭 {text[:200]}")
            self._emit("agent_thinking", target, message=text)

        responses = []
        for call in output.function_calls:
            if session.cancel_requested:
                break
            part = await self._run_call(session, call, output.message)
            if part is not None:
                responses.append(part)

        if responses:
            session.history.append(types.Content(role="user", parts=responses))

        session.step = n
        return output

    async def _run_call(self, session, call, reasoning):
        """Execute the actions for one function call, then screenshot as its result.

        Returns None when a cancel lands mid-call.
        """
        target = session.target_id
        actions = translate_call(call)
        logger.info(f"    🔧 {call.name}({json.dumps(call.args or {}, default=str)[:120]}) → {len(actions)} action(s)")

        for action in actions:
            if session.cancel_requested:
                break
            described = describe_action(action)
            self._emit("agent_action", target, action=described, reasoning=reasoning)
            result = await self.executor.execute(target, action)
            self._emit("action_result", target, tool_name=described["type"], success=result.success, error=result.error)
            if not result.success:
                logger.warning(f"      → {described['type']} failed: {result.error}")

        if session.cancel_requested:
            return None

        shot = await self.executor.execute(target, CaptureScreenshot())
        if not shot.success:
            logger.warning(f"      → screenshot failed: {shot.error}")
        return function_response_part(
            call,
            shot.page_url,
            image_base64=shot.image_base64,
            error=None if shot.success else shot.error,
        )

    async def _cleanup(self, session):
        """Detach no matter how the loop ended. A failed detach is logged, never raised."""
        session.processing = False
        try:
            await self.sessions.detach(session.target_id)
        except Exception as e:
            logger.warning(f"  ⚠️ Detach from {session.target_id} failed: {e}")
