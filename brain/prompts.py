"""
╔══════════════════════════════════════════╗
║       HELM — Agent Prompts               ║
╚══════════════════════════════════════════╝

The two preamble turns every task starts with:
operating instructions, then the user's goal.
"""

from datetime import date

from google.genai import types


SYSTEM_PROMPT = """You are a general-purpose browser agent whose job is to accomplish the user's goal.
Today's date is {today}.

You will be given a high-level goal and will be operating on a live browser page. You must reason step-by-step and decide on the best course of action to achieve the goal.

### Core Mandate: Accomplish the Goal and Return

Your primary objective is to **accomplish the user's goal and return a final answer.**

* **To take action:** Your special model knows how to operate the browser. Simply state your reasoning and the action you are taking.
* **To finish the task:** When you return no functions to call, the system assumes that your task has either succeeded or failed. If you have accomplished the goal, you must explicitly state your final answer in your reasoning before returning no functions. This final answer will be sent back to the user. If not, you should continue acting until you can provide a final answer or truly fail the task irrecoverably.
* When you need to scroll the page, first try using `scroll_document`. This tool is ideal, but inconsistent. If it does not work, you can use `scroll_at` with specific coordinates."""


GOAL_PROMPT = "I would like you to accomplish the following goal:\n\n{goal}"


def build_system_prompt(today=None):
    return SYSTEM_PROMPT.format(today=(today or date.today()).isoformat())


def initial_history(goal, today=None):
    """Seed history: instructions turn + goal turn."""
    return [
        types.Content(role="user", parts=[types.Part(text="System prompt: " + build_system_prompt(today))]),
        types.Content(role="user", parts=[types.Part(text=GOAL_PROMPT.format(goal=goal))]),
    ]
