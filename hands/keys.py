"""
╔══════════════════════════════════════════╗
║       HELM — Key Descriptor Table        ║
╚══════════════════════════════════════════╝

Maps human key names ("Enter", "a", "2", "Alt") to the
identifiers Input.dispatchKeyEvent wants: symbolic key,
physical code and Windows virtual key code. Modifiers also
carry a bitmask value for the `modifiers` field.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class KeyDescriptor:
    key: str
    code: Optional[str] = None
    key_code: Optional[int] = None


KEY_DEFINITIONS = {
    "Enter": KeyDescriptor("Enter", "Enter", 13),
    "Tab": KeyDescriptor("Tab", "Tab", 9),
    "Backspace": KeyDescriptor("Backspace", "Backspace", 8),
    "Escape": KeyDescriptor("Escape", "Escape", 27),
    "Delete": KeyDescriptor("Delete", "Delete", 46),
    "ArrowLeft": KeyDescriptor("ArrowLeft", "ArrowLeft", 37),
    "ArrowUp": KeyDescriptor("ArrowUp", "ArrowUp", 38),
    "ArrowRight": KeyDescriptor("ArrowRight", "ArrowRight", 39),
    "ArrowDown": KeyDescriptor("ArrowDown", "ArrowDown", 40),
    "Home": KeyDescriptor("Home", "Home", 36),
    "End": KeyDescriptor("End", "End", 35),
    "PageUp": KeyDescriptor("PageUp", "PageUp", 33),
    "PageDown": KeyDescriptor("PageDown", "PageDown", 34),
    "Alt": KeyDescriptor("Alt", "AltLeft", 18),
    "Control": KeyDescriptor("Control", "ControlLeft", 17),
    "Meta": KeyDescriptor("Meta", "MetaLeft", 91),
    "Shift": KeyDescriptor("Shift", "ShiftLeft", 16),
}

MODIFIER_BITS = {
    "Alt": 1,
    "Control": 2,
    "Meta": 4,
    "Shift": 8,
}

KEY_ALIASES = {
    "ctrl": "Control",
    "cmd": "Meta",
    "command": "Meta",
    "win": "Meta",
    "windows": "Meta",
    "option": "Alt",
    "esc": "Escape",
    "return": "Enter",
    "space": " ",
}

_CANONICAL = {name.lower(): name for name in KEY_DEFINITIONS}


def normalize_key_name(token):
    """Resolve aliases and letter case: 'ctrl' → 'Control', 'pagedown' → 'PageDown'.

    Single characters are returned untouched so 'a' and 'A' stay distinct.
    """
    lowered = token.lower()
    if lowered in KEY_ALIASES:
        return KEY_ALIASES[lowered]
    if len(token) == 1:
        return token
    return _CANONICAL.get(lowered, token)


def describe_key(name):
    """Look up a key's protocol identifiers.

    Unknown multi-character names get only the symbolic key — no code,
    no virtual key code.
    """
    if name in KEY_DEFINITIONS:
        return KEY_DEFINITIONS[name]
    if len(name) == 1 and name.isascii() and name.isalpha():
        upper = name.upper()
        return KeyDescriptor(name, f"Key{upper}", ord(upper))
    if len(name) == 1 and name.isascii() and name.isdigit():
        return KeyDescriptor(name, f"Digit{name}", ord(name))
    if name == " ":
        return KeyDescriptor(" ", "Space", 32)
    return KeyDescriptor(name)


@dataclass(frozen=True)
class KeyCombination:
    modifiers: int
    modifier_names: tuple
    main_key: str

    @property
    def shift(self):
        return bool(self.modifiers & MODIFIER_BITS["Shift"])

    @property
    def raw(self):
        """rawKeyDown suppresses text insertion: used for shortcuts and named keys."""
        has_non_shift = bool(self.modifiers & ~MODIFIER_BITS["Shift"])
        return has_non_shift or len(self.main_key) > 1


def split_combination(combo):
    """Split 'Ctrl+Shift+a' into tokens. '+' alone and a trailing '++' mean the plus key."""
    if combo == "+":
        return ["+"]
    if combo.endswith("++"):
        return [t.strip() for t in combo[:-2].split("+")] + ["+"]
    return [t.strip() for t in combo.split("+")]


def parse_key_combination(combo):
    """Parse a '+'-joined chord into a modifier mask and its main key.

    The last non-modifier token wins as the main key. A chord made only of
    modifiers presses the last modifier itself.
    """
    modifiers = 0
    names = []
    main_key = ""
    for token in split_combination(combo):
        if not token:
            continue
        name = normalize_key_name(token)
        bit = MODIFIER_BITS.get(name)
        if bit:
            if not modifiers & bit:
                names.append(name)
            modifiers |= bit
        else:
            main_key = name
    if not main_key and names:
        main_key = names[-1]
    return KeyCombination(modifiers, tuple(names), main_key)
