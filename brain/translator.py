"""
╔══════════════════════════════════════════╗
║       HELM — Function-Call Translator    ║
╚══════════════════════════════════════════╝

Turns one computer-use function call into the ordered list of
actions that realizes it. Some calls need nothing (the browser
is already open), some need several (type_text_at = focus
click, typing, optional Enter).

Unknown names and malformed arguments are logged and become an
empty list so the loop can keep going.
"""

import logging

from hands.actions import (
    Click, DragAndDrop, GoBack, GoForward, KeyPress, Navigate,
    Scroll, ScrollDocument, TypeText, Wait,
)

logger = logging.getLogger("HELM")

SUPPORTED_FUNCTIONS = frozenset({
    "open_web_browser", "click_at", "type_text_at", "key_combination",
    "scroll_document", "scroll_at", "navigate", "go_back", "go_forward",
    "wait_5_seconds", "drag_and_drop",
})

DEFAULT_SCROLL_AT_MAGNITUDE = 800
DEFAULT_SCROLL_DOCUMENT_MAGNITUDE = 999


def _scroll_delta(direction, magnitude):
    if direction == "up":
        return 0, -magnitude
    if direction == "left":
        return -magnitude, 0
    if direction == "right":
        return magnitude, 0
    return 0, magnitude


def _translate(name, args):
    match name:
        case "open_web_browser":
            return []

        case "click_at":
            return [Click(args["x"], args["y"], button=args.get("button") or "left")]

        case "type_text_at":
            # Focus click first: typing into an unfocused page is unreliable.
            actions = [
                Click(args["x"], args["y"], button="left"),
                TypeText(args["text"]),
            ]
            if args.get("press_enter", False):
                actions.append(KeyPress("Enter"))
            return actions

        case "key_combination":
            keys = [k.strip() for k in args["keys"].split("+")]
            return [KeyPress("+".join(keys))]

        case "scroll_document":
            magnitude = args.get("magnitude")
            return [ScrollDocument(
                args["direction"].lower(),
                DEFAULT_SCROLL_DOCUMENT_MAGNITUDE if magnitude is None else magnitude,
            )]

        case "scroll_at":
            direction = (args.get("direction") or "down").lower()
            magnitude = args.get("magnitude")
            if not isinstance(magnitude, (int, float)):
                magnitude = DEFAULT_SCROLL_AT_MAGNITUDE
            delta_x, delta_y = _scroll_delta(direction, magnitude)
            return [Scroll(args["x"], args["y"], delta_x, delta_y)]

        case "navigate":
            return [Navigate(args["url"])]

        case "go_back":
            return [GoBack()]

        case "go_forward":
            return [GoForward()]

        case "wait_5_seconds":
            return [Wait(5000)]

        case "drag_and_drop":
            return [DragAndDrop(args["x"], args["y"], args["destination_x"], args["destination_y"])]

        case _:
            logger.info(f"  ⚠️ Unsupported function: {name}")
            return []


def translate(name, args=None):
    """Map a function call (name + argument bag) to an ordered action list."""
    if not name:
        return []
    try:
        return _translate(name, dict(args or {}))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"  ⚠️ Bad arguments for {name}: {e!r}")
        return []


def translate_call(call):
    """Same as translate() for a google.genai FunctionCall."""
    return translate(call.name, call.args)
