"""
╔══════════════════════════════════════════╗
║       HELM — Control Server              ║
╚══════════════════════════════════════════╝

WebSocket control surface. Clients send JSON requests:

  start_task   {target_id?, goal}   → task_started
  cancel       {target_id}          → task_cancelled
  get_state    {target_id?}         → state
  list_targets                      → targets
  get_stats                         → stats

and receive every event-bus event as it is emitted.
Errors come back as {"type": "error", "data": {"message": ...}}.
"""

import asyncio
import json
import logging

import websockets

from utils.event_bus import event_bus
from utils.scheduler import TaskAlreadyRunning

logger = logging.getLogger("HELM")

WS_HOST = "127.0.0.1"
WS_PORT = 8421


async def _send(websocket, msg_type, data):
    await websocket.send(json.dumps({"type": msg_type, "data": data}, default=str))


async def _send_error(websocket, message):
    await _send(websocket, "error", {"message": message})


class HelmServer:
    """Runs the control WebSocket server on the current event loop."""

    def __init__(self, scheduler, cdp, host=WS_HOST, port=WS_PORT, bus=None):
        self.scheduler = scheduler
        self.cdp = cdp
        self.host = host
        self.port = port
        self.bus = bus or event_bus

    async def serve_forever(self):
        async with websockets.serve(self._handler, self.host, self.port):
            logger.info(f"  🌐 Control server: ws://{self.host}:{self.port}")
            await asyncio.Future()  # Run forever

    async def _handler(self, websocket, path=None):
        # Send history to new client
        for event in self.bus.get_history():
            try:
                await websocket.send(json.dumps(event, default=str))
            except Exception:
                return

        self.bus.subscribe(websocket.send)
        try:
            async for message in websocket:
                await self._handle_ws_message(message, websocket)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.bus.unsubscribe(websocket.send)

    async def _handle_ws_message(self, message, websocket):
        """Dispatch one client request. Never raises."""
        try:
            data = json.loads(message)
            if not isinstance(data, dict):
                raise ValueError("message must be a JSON object")
        except ValueError as e:
            await _send_error(websocket, f"Invalid message: {e}")
            return

        msg_type = data.get("type", "")
        try:
            if msg_type == "start_task":
                await self._start_task(data, websocket)

            elif msg_type == "cancel":
                target_id = data.get("target_id")
                if not target_id:
                    await _send_error(websocket, "cancel requires target_id")
                    return
                cancelled = await self.scheduler.cancel(target_id)
                await _send(websocket, "task_cancelled", {"target_id": target_id, "cancelled": cancelled})

            elif msg_type == "get_state":
                await _send(websocket, "state", self.scheduler.get_state(data.get("target_id")))

            elif msg_type == "list_targets":
                tabs = await asyncio.to_thread(self.cdp.get_tabs)
                await _send(websocket, "targets", tabs)

            elif msg_type == "get_stats":
                await _send(websocket, "stats", self.bus.get_stats())

            else:
                await _send_error(websocket, f"Unknown message type: {msg_type or '(missing)'}")

        except TaskAlreadyRunning as e:
            await _send_error(websocket, str(e))
        except Exception as e:
            logger.warning(f"  ⚠️ Control request {msg_type} failed: {e}")
            await _send_error(websocket, f"{msg_type} failed: {e}")

    async def _start_task(self, data, websocket):
        goal = (data.get("goal") or "").strip()
        if not goal:
            await _send_error(websocket, "start_task requires a goal")
            return

        await self.cdp.ensure_connected()
        target_id = data.get("target_id") or await asyncio.to_thread(self.cdp.pick_page)
        if not target_id:
            await _send_error(websocket, "No page target available")
            return

        self.scheduler.start(target_id, goal)
        self.bus.emit("task_received", {"target_id": target_id, "goal": goal, "source": "control"})
        await _send(websocket, "task_started", {"target_id": target_id, "goal": goal})
