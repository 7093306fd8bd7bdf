#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════╗
║                                                          ║
║            ██╗  ██╗███████╗██╗     ███╗   ███╗           ║
║            ██║  ██║██╔════╝██║     ████╗ ████║           ║
║            ███████║█████╗  ██║     ██╔████╔██║           ║
║            ██╔══██║██╔══╝  ██║     ██║╚██╔╝██║           ║
║            ██║  ██║███████╗███████╗██║ ╚═╝ ██║           ║
║            ╚═╝  ╚═╝╚══════╝╚══════╝╚═╝     ╚═╝           ║
║                                                          ║
║          Screenshot-Driven Browser Agent                 ║
║                                                          ║
╚══════════════════════════════════════════════════════════╝

Usage:
    python helm.py                          # Start the control server
    python helm.py "find the cheapest..."   # Run one task on the best tab
"""

import asyncio
import os
import sys
import logging

import yaml

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, BASE_DIR)

from agents.browser_agent import BrowserAgent
from brain.llm_client import GeminiClient, DEFAULT_MODEL
from hands.cdp import CDP, CDPError
from hands.executor import ActionExecutor
from hands.sessions import SessionManager
from server import HelmServer
from utils.event_bus import event_bus
from utils.logger import setup_logger
from utils.scheduler import AgentScheduler

logger = logging.getLogger("HELM")


def load_config(path=None):
    """Load configuration from config.yaml with env var overrides.

    The API key can be set via environment variables:
      HELM_GEMINI_API_KEY  →  llm.api_key  (GEMINI_API_KEY also accepted)
      HELM_CDP_PORT        →  browser.cdp_port
    """
    config_path = path or os.path.join(BASE_DIR, "config.yaml")
    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    api_key = os.environ.get("HELM_GEMINI_API_KEY") or os.environ.get("GEMINI_API_KEY")
    if api_key:
        config.setdefault("llm", {})["api_key"] = api_key
    if os.environ.get("HELM_CDP_PORT"):
        config.setdefault("browser", {})["cdp_port"] = int(os.environ["HELM_CDP_PORT"])

    return config


class Helm:
    """Wires the browser connection, action core, model client and agent together."""

    def __init__(self, config):
        self.config = config
        browser_cfg = config.get("browser", {})
        llm_cfg = config.get("llm", {})
        agent_cfg = config.get("agent", {})

        api_key = llm_cfg.get("api_key") or None
        if api_key and api_key.startswith("YOUR_"):
            api_key = None
        if not api_key:
            logger.warning("  ⚠️ No Gemini API key configured. Set HELM_GEMINI_API_KEY.")

        self.cdp = CDP(
            host=browser_cfg.get("cdp_host", "localhost"),
            port=browser_cfg.get("cdp_port", 9222),
            chrome_path=browser_cfg.get("chrome_path"),
            user_data_dir=browser_cfg.get("user_data_dir"),
        )
        self.sessions = SessionManager(self.cdp)
        self.executor = ActionExecutor(self.sessions)
        self.engine = GeminiClient(
            api_key=api_key,
            model=llm_cfg.get("model", DEFAULT_MODEL),
            temperature=llm_cfg.get("temperature", 1.0),
            top_p=llm_cfg.get("top_p", 0.95),
            top_k=llm_cfg.get("top_k", 40),
            max_output_tokens=llm_cfg.get("max_output_tokens", 8192),
        )
        self.agent = BrowserAgent(
            self.engine, self.sessions, self.executor,
            max_steps=agent_cfg.get("max_steps", 100),
            step_pause=agent_cfg.get("step_pause", 1.0),
        )
        self.scheduler = AgentScheduler(self.agent)

    async def run_task(self, goal, target_id=None):
        """Run one goal to completion on `target_id` (or the best page). Returns the outcome dict."""
        await self.cdp.ensure_connected()
        target_id = target_id or await asyncio.to_thread(self.cdp.pick_page)
        if not target_id:
            raise CDPError("No page target available")
        self.scheduler.start(target_id, goal)
        return await self.scheduler.wait(target_id)

    async def serve(self):
        server_cfg = self.config.get("server", {})
        server = HelmServer(
            self.scheduler, self.cdp,
            host=server_cfg.get("host", "127.0.0.1"),
            port=server_cfg.get("port", 8421),
        )
        await server.serve_forever()

    async def close(self):
        await self.scheduler.shutdown()
        await self.cdp.close()


def _print_progress(data):
    action = data.get("action", {})
    print(f"  → {action.get('type', '?')}")


async def _main(argv):
    config = load_config()
    setup_logger(config, BASE_DIR)
    helm = Helm(config)
    try:
        if argv:
            event_bus.subscribe_sync("agent_action", _print_progress)
            outcome = await helm.run_task(" ".join(argv))
            print(f"\n  [{outcome['status']}] {outcome['summary']}")
            return 0 if outcome["success"] else 1
        await helm.serve()
        return 0
    finally:
        await helm.close()


def main():
    try:
        return asyncio.run(_main(sys.argv[1:]))
    except KeyboardInterrupt:
        logger.info("\n  🛑 HELM stopped by user.")
        return 130
    except CDPError as e:
        logger.error(f"  ❌ {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
