"""
╔══════════════════════════════════════════╗
║       HELM — Browser Action Vocabulary   ║
╚══════════════════════════════════════════╝

The closed set of actions the executor understands. This is
the contract between the function-call translator and the
executor; bump ACTION_VOCABULARY_VERSION when it changes.

Coordinates are virtual (0–999 per axis). Delays are in ms.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Union

ACTION_VOCABULARY_VERSION = 1

MOUSE_BUTTONS = ("left", "right", "middle")
SCROLL_DIRECTIONS = ("up", "down", "left", "right")


class ActionKind(str, Enum):
    NAVIGATE = "navigate"
    RELOAD = "reload"
    GO_BACK = "go_back"
    GO_FORWARD = "go_forward"
    CLICK = "click"
    DOUBLE_CLICK = "double_click"
    SCROLL = "scroll"
    SCROLL_DOCUMENT = "scroll_document"
    DRAG_AND_DROP = "drag_and_drop"
    TYPE_TEXT = "type_text"
    KEY_PRESS = "key_press"
    CAPTURE_SCREENSHOT = "capture_screenshot"
    WAIT = "wait"


def _check_button(button):
    if button not in MOUSE_BUTTONS:
        raise ValueError(f"Unknown mouse button '{button}'. Use: {', '.join(MOUSE_BUTTONS)}")


@dataclass(frozen=True)
class Navigate:
    url: str
    kind: ClassVar[ActionKind] = ActionKind.NAVIGATE


@dataclass(frozen=True)
class Reload:
    ignore_cache: bool = False
    kind: ClassVar[ActionKind] = ActionKind.RELOAD


@dataclass(frozen=True)
class GoBack:
    kind: ClassVar[ActionKind] = ActionKind.GO_BACK


@dataclass(frozen=True)
class GoForward:
    kind: ClassVar[ActionKind] = ActionKind.GO_FORWARD


@dataclass(frozen=True)
class Click:
    x: float
    y: float
    button: str = "left"
    click_count: int = 1
    kind: ClassVar[ActionKind] = ActionKind.CLICK

    def __post_init__(self):
        _check_button(self.button)


@dataclass(frozen=True)
class DoubleClick:
    x: float
    y: float
    kind: ClassVar[ActionKind] = ActionKind.DOUBLE_CLICK


@dataclass(frozen=True)
class Scroll:
    x: float
    y: float
    delta_x: float
    delta_y: float
    kind: ClassVar[ActionKind] = ActionKind.SCROLL


@dataclass(frozen=True)
class ScrollDocument:
    direction: str
    magnitude: float = 999
    kind: ClassVar[ActionKind] = ActionKind.SCROLL_DOCUMENT

    def __post_init__(self):
        if self.direction not in SCROLL_DIRECTIONS:
            raise ValueError(f"Unknown scroll direction '{self.direction}'. Use: {', '.join(SCROLL_DIRECTIONS)}")


@dataclass(frozen=True)
class DragAndDrop:
    from_x: float
    from_y: float
    to_x: float
    to_y: float
    button: str = "left"
    steps: int = 5
    delay_ms: int = 0
    kind: ClassVar[ActionKind] = ActionKind.DRAG_AND_DROP

    def __post_init__(self):
        _check_button(self.button)


@dataclass(frozen=True)
class TypeText:
    text: str
    delay_ms: int = 0
    kind: ClassVar[ActionKind] = ActionKind.TYPE_TEXT


@dataclass(frozen=True)
class KeyPress:
    key: str
    delay_ms: int = 0
    kind: ClassVar[ActionKind] = ActionKind.KEY_PRESS


@dataclass(frozen=True)
class CaptureScreenshot:
    kind: ClassVar[ActionKind] = ActionKind.CAPTURE_SCREENSHOT


@dataclass(frozen=True)
class Wait:
    time_ms: int = 500
    kind: ClassVar[ActionKind] = ActionKind.WAIT


Action = Union[
    Navigate, Reload, GoBack, GoForward, Click, DoubleClick, Scroll,
    ScrollDocument, DragAndDrop, TypeText, KeyPress, CaptureScreenshot, Wait,
]


def describe_action(action):
    """Plain dict for logs and UI events: {"type": "click", "x": ..., ...}."""
    return {"type": action.kind.value, **asdict(action)}


@dataclass
class ActionResult:
    """Outcome of one executed action. The executor returns these, never raises."""
    success: bool
    info: Optional[str] = None
    error: Optional[str] = None
    image_base64: Optional[str] = field(default=None, repr=False)
    page_url: Optional[str] = None
    page_title: Optional[str] = None

    @classmethod
    def ok(cls, info=None, **extra):
        return cls(success=True, info=info, **extra)

    @classmethod
    def failed(cls, error):
        return cls(success=False, error=error)

    def to_dict(self):
        data = {"success": self.success}
        for key in ("info", "error", "page_url", "page_title"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.image_base64:
            data["has_image"] = True
        return data
