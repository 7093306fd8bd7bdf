"""
╔══════════════════════════════════════════╗
║       HELM — Agents                      ║
╚══════════════════════════════════════════╝

The screenshot-driven browser agent: one model loop per
target, acting through the action executor in hands/.
"""

from agents.browser_agent import BrowserAgent
