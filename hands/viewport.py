"""
╔══════════════════════════════════════════╗
║       HELM — Coordinate Normalizer       ║
╚══════════════════════════════════════════╝

The reasoning engine speaks in a virtual 0–999 grid per axis.
Pixels are resolved against the live viewport at dispatch time,
never from a cached size: the page can resize or navigate between
planning an action and executing it.
"""

import math

VIRTUAL_MAX = 999
VIRTUAL_SPAN = 1000


def clamp_virtual(value):
    """Clamp a virtual coordinate into [0, 999]."""
    return min(VIRTUAL_MAX, max(0, value))


def scale(x, y, width, height):
    """Convert a virtual (x, y) into pixels for a viewport of width × height."""
    x = clamp_virtual(x)
    y = clamp_virtual(y)
    return (
        math.floor(x / VIRTUAL_SPAN * width),
        math.floor(y / VIRTUAL_SPAN * height),
    )


async def viewport_size(sessions, target_id):
    """Fetch (clientWidth, clientHeight) of the target's CSS layout viewport."""
    metrics = await sessions.send(target_id, "Page.getLayoutMetrics")
    viewport = metrics["cssLayoutViewport"]
    return viewport["clientWidth"], viewport["clientHeight"]


async def normalize(sessions, target_id, x, y):
    """Resolve a virtual (x, y) to pixel coordinates using the live viewport."""
    width, height = await viewport_size(sessions, target_id)
    return scale(x, y, width, height)
