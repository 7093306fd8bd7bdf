"""
╔══════════════════════════════════════════════════════════════╗
║       HELM — Chrome DevTools Protocol (CDP) Connection       ║
╠══════════════════════════════════════════════════════════════╣
║  One browser-level websocket to Chrome.                      ║
║  Page sessions are multiplexed over it (flatten mode), so    ║
║  every command can be routed to a target by session id.      ║
║  Handles: discovery, launch, send/receive, tabs.             ║
╚══════════════════════════════════════════════════════════════╝
"""

import asyncio
import json
import logging
import os
import subprocess
import urllib.request

import websockets

logger = logging.getLogger("HELM")

CDP_HOST = "localhost"
CDP_PORT = 9222


class CDPError(RuntimeError):
    """A command was rejected by the browser or the connection is gone."""


class CDP:
    """Chrome DevTools Protocol connection over a browser websocket."""

    def __init__(self, host=CDP_HOST, port=CDP_PORT, chrome_path=None, user_data_dir=None):
        self.host = host
        self.port = port
        self.chrome_path = chrome_path
        self.user_data_dir = user_data_dir
        self._ws = None
        self._next_id = 0
        self._pending = {}             # msg_id → Future
        self._recv_task = None
        self._chrome_proc = None

    # ─── Connection ────────────────────────────────────

    async def ensure_connected(self):
        """Connect to Chrome's browser endpoint. Launch Chrome if configured and needed."""
        if self.connected:
            return

        info = await asyncio.to_thread(self._browser_version)
        if not info and self.chrome_path:
            self._launch_chrome()
            for _ in range(40):  # Wait up to 20s
                await asyncio.sleep(0.5)
                info = await asyncio.to_thread(self._browser_version)
                if info:
                    break

        if not info or not info.get("webSocketDebuggerUrl"):
            raise CDPError(f"Cannot connect to Chrome on {self.host}:{self.port}. Is it running with --remote-debugging-port?")

        await self.connect(info["webSocketDebuggerUrl"])

    async def connect(self, ws_url):
        """Open the websocket and start the background reader."""
        await self.close()
        self._ws = await websockets.connect(ws_url, max_size=None)
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info(f"  🔌 CDP connected: {ws_url[:80]}")

    def _http_json(self, path, method="GET"):
        url = f"http://{self.host}:{self.port}{path}"
        req = urllib.request.Request(url, method=method)
        with urllib.request.urlopen(req, timeout=2) as r:
            return json.loads(r.read())

    def _browser_version(self):
        """Get the browser endpoint description from /json/version, or None."""
        try:
            return self._http_json("/json/version")
        except Exception:
            return None

    def _list_targets(self):
        """Get list of browser targets from Chrome's HTTP endpoint."""
        try:
            return self._http_json("/json")
        except Exception:
            return None

    def _launch_chrome(self):
        """Launch Chrome with remote debugging enabled."""
        data_dir = self.user_data_dir or os.path.join(os.path.expanduser("~"), ".helm_chrome_profile")
        os.makedirs(data_dir, exist_ok=True)
        logger.info(f"  🚀 Launching Chrome on debug port {self.port}")
        self._chrome_proc = subprocess.Popen(
            [
                self.chrome_path,
                f"--remote-debugging-port={self.port}",
                f"--user-data-dir={data_dir}",
                "--remote-allow-origins=*",
                "--no-first-run",
                "--no-default-browser-check",
            ],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    # ─── Send / Receive ────────────────────────────────

    async def send(self, method, params=None, session_id=None):
        """Send a CDP command and wait for its response. No timeout is applied."""
        if not self.connected:
            raise CDPError(f"CDP {method}: not connected to Chrome")

        self._next_id += 1
        mid = self._next_id
        msg = {"id": mid, "method": method}
        if params:
            msg["params"] = params
        if session_id:
            msg["sessionId"] = session_id

        future = asyncio.get_running_loop().create_future()
        self._pending[mid] = future
        try:
            await self._ws.send(json.dumps(msg))
            resp = await future
        finally:
            self._pending.pop(mid, None)

        if "error" in resp:
            err = resp["error"]
            raise CDPError(f"CDP {method}: {err.get('message', str(err))}")
        return resp.get("result", {})

    async def _recv_loop(self):
        """Background task: read websocket messages until the socket closes."""
        try:
            async for raw in self._ws:
                if not raw:
                    continue
                msg = json.loads(raw)
                if "id" in msg:
                    # Response to a command we sent
                    future = self._pending.get(msg["id"])
                    if future and not future.done():
                        future.set_result(msg)
                # Events (no id) are ignored
        except websockets.exceptions.ConnectionClosed:
            logger.warning("  ⚠️ CDP websocket closed")
        except Exception as e:
            logger.warning(f"  ⚠️ CDP reader stopped: {e}")
        finally:
            self._ws = None
            self._fail_pending("connection closed")

    def _fail_pending(self, reason):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(CDPError(f"CDP {reason}"))
        self._pending.clear()

    # ─── Tab Management ────────────────────────────────

    def get_tabs(self):
        """Get all open browser tabs as list of dicts."""
        tabs = self._list_targets() or []
        return [
            {
                "id": t.get("id", ""),
                "title": t.get("title", ""),
                "url": t.get("url", ""),
            }
            for t in tabs
            if t.get("type") == "page"
        ]

    def pick_page(self):
        """Pick the best page target to drive. Returns target id or None.

        Prefers the first regular page over blank/new-tab pages, falling back
        to any page at all.
        """
        tabs = self.get_tabs()
        for t in tabs:
            url = t.get("url", "")
            if not url.startswith(("chrome://", "chrome-untrusted:", "devtools://")):
                return t["id"]
        return tabs[0]["id"] if tabs else None

    # ─── Properties ────────────────────────────────────

    @property
    def connected(self):
        return self._ws is not None

    async def close(self):
        """Close the websocket connection (does NOT quit Chrome)."""
        ws, self._ws = self._ws, None
        if ws:
            try:
                await ws.close()
            except Exception:
                pass
        if self._recv_task and not self._recv_task.done():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except (asyncio.CancelledError, Exception):
                pass
        self._recv_task = None
        self._fail_pending("connection closed")
