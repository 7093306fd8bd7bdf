"""
╔══════════════════════════════════════════════════════════════╗
║       HELM — Input Synthesizer                               ║
╠══════════════════════════════════════════════════════════════╣
║  Builds the exact Input.dispatchMouseEvent /                 ║
║  Input.dispatchKeyEvent sequences for each gesture and       ║
║  dispatches them in order through a target-bound sender.     ║
║                                                              ║
║    click    = hover move → press → release                   ║
║    wheel    = hover move → mouseWheel                        ║
║    drag     = hover → press → N masked moves → release       ║
║    text     = keyDown/keyUp per character                    ║
║    chord    = (raw)keyDown → keyUp with modifier mask        ║
╚══════════════════════════════════════════════════════════════╝
"""

import asyncio

from hands.keys import KEY_DEFINITIONS, describe_key, parse_key_combination

MOUSE_EVENT = "Input.dispatchMouseEvent"
KEY_EVENT = "Input.dispatchKeyEvent"

BUTTON_MASKS = {
    "left": 1,
    "right": 2,
    "middle": 4,
}

DEFAULT_DRAG_STEPS = 5


# ═══════════════════════════════════════════════════════
#  Event builders (pure)
# ═══════════════════════════════════════════════════════

def hover_event(x, y):
    """Zero-button move so hover state is right before a press."""
    return {"type": "mouseMoved", "x": x, "y": y, "button": "none"}


def click_events(x, y, button="left", click_count=1):
    return [
        hover_event(x, y),
        {"type": "mousePressed", "x": x, "y": y, "button": button, "clickCount": click_count},
        {"type": "mouseReleased", "x": x, "y": y, "button": button, "clickCount": click_count},
    ]


def wheel_events(x, y, delta_x, delta_y):
    return [
        hover_event(x, y),
        {"type": "mouseWheel", "x": x, "y": y, "button": "none", "deltaX": delta_x, "deltaY": delta_y},
    ]


def drag_path(from_x, from_y, to_x, to_y, steps=DEFAULT_DRAG_STEPS):
    """Linearly interpolated virtual points, excluding the start, ending at the destination."""
    steps = max(1, int(steps))
    return [
        (from_x + (to_x - from_x) * i / steps, from_y + (to_y - from_y) * i / steps)
        for i in range(1, steps + 1)
    ]


def _key_fields(desc):
    fields = {"key": desc.key}
    if desc.code:
        fields["code"] = desc.code
    if desc.key_code is not None:
        fields["windowsVirtualKeyCode"] = desc.key_code
    return fields


def char_key_events(ch):
    """keyDown/keyUp for one typed character.

    Newlines and tabs go through the Enter/Tab descriptors; everything else
    is sent as literal text so any Unicode character can be typed.
    """
    if ch in ("\n", "\r"):
        desc = KEY_DEFINITIONS["Enter"]
    elif ch == "\t":
        desc = KEY_DEFINITIONS["Tab"]
    else:
        return [
            {"type": "keyDown", "text": ch, "unmodifiedText": ch},
            {"type": "keyUp"},
        ]
    down = {"type": "keyDown", **_key_fields(desc)}
    return [down, {**down, "type": "keyUp"}]


def key_combination_events(combo):
    """(down, up) events for a chord like 'Ctrl+Shift+a'."""
    chord = parse_key_combination(combo)
    desc = describe_key(chord.main_key)
    base = {"modifiers": chord.modifiers, **_key_fields(desc)}

    if chord.raw:
        down = {"type": "rawKeyDown", **base}
    else:
        down = {
            "type": "keyDown",
            **base,
            "text": chord.main_key.upper() if chord.shift else chord.main_key.lower(),
            "unmodifiedText": chord.main_key.lower(),
        }
    return down, {"type": "keyUp", **base}


async def _pause(delay_ms):
    if delay_ms and delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)


# ═══════════════════════════════════════════════════════
#  Dispatcher
# ═══════════════════════════════════════════════════════

class InputSynthesizer:
    """Dispatches gesture event sequences through `send(method, params)`.

    All coordinates here are already in pixels.
    """

    def __init__(self, send):
        self._send = send

    async def _mouse(self, params):
        await self._send(MOUSE_EVENT, params)

    async def _key(self, params):
        await self._send(KEY_EVENT, params)

    async def click(self, x, y, button="left", click_count=1):
        for event in click_events(x, y, button, click_count):
            await self._mouse(event)

    async def wheel(self, x, y, delta_x, delta_y):
        for event in wheel_events(x, y, delta_x, delta_y):
            await self._mouse(event)

    async def drag(self, start, path, end, button="left", delay_ms=0):
        """Press at `start`, move through `path` with the button held, release at `end`.

        `end` is resolved separately from the last path point so interpolation
        rounding never shifts the drop position.
        """
        mask = BUTTON_MASKS.get(button, 1)
        x, y = start
        await self._mouse(hover_event(x, y))
        await self._mouse({
            "type": "mousePressed", "x": x, "y": y,
            "button": button, "buttons": mask, "clickCount": 1,
        })
        await _pause(delay_ms)

        for px, py in path:
            await self._mouse({
                "type": "mouseMoved", "x": px, "y": py,
                "button": button, "buttons": mask,
            })
            await _pause(delay_ms)

        x, y = end
        await self._mouse({
            "type": "mouseReleased", "x": x, "y": y,
            "button": button, "buttons": mask, "clickCount": 1,
        })

    async def type_text(self, text, delay_ms=0):
        """Type a string one character at a time, in order."""
        for ch in text:
            for event in char_key_events(ch):
                await self._key(event)
            await _pause(delay_ms)

    async def key_press(self, combo, delay_ms=0):
        down, up = key_combination_events(combo)
        await self._key(down)
        await _pause(delay_ms)
        await self._key(up)
