"""
Hotkey Registration - One global keyboard shortcut for opening the grid.

Key codes and modifier flags use the macOS virtual key code and event
modifier flag layout. Raw flags from a key event are normalized before
use:
  - only command, option, control and shift are kept
  - left/right device bits are folded into the generic modifier

A binding of a pure modifier key with no modifier flags is rejected, so a
stray modifier press can never become the shortcut.

Capture is modal: start_capture() opens a session (cancelling any earlier
one), handle_key() feeds it key events, commit() stores the pending
binding. Escape with no modifiers cancels without touching the binding.
"""

import enum
import threading
from dataclasses import dataclass

from loguru import logger

from launchgrid.errors import InvalidInput
from launchgrid.services.preferences import Preferences

PREFERENCE_KEY = "global_hotkey"

ESCAPE_KEY_CODE = 53

# Command, right command, caps lock, right option, shift, right shift,
# option, right control, control
MODIFIER_ONLY_KEY_CODES = frozenset({55, 54, 58, 61, 56, 60, 59, 62, 57})


class Modifier(enum.IntFlag):
    NONE = 0
    SHIFT = 1 << 17
    CONTROL = 1 << 18
    OPTION = 1 << 19
    COMMAND = 1 << 20


SHORTCUT_MODIFIERS = Modifier.SHIFT | Modifier.CONTROL | Modifier.OPTION | Modifier.COMMAND

# Device-dependent left/right bits (low 16 bits of the raw flags)
_DEVICE_BITS = {
    0x0001: Modifier.CONTROL,   # left control
    0x2000: Modifier.CONTROL,   # right control
    0x0002: Modifier.SHIFT,     # left shift
    0x0004: Modifier.SHIFT,     # right shift
    0x0008: Modifier.COMMAND,   # left command
    0x0010: Modifier.COMMAND,   # right command
    0x0020: Modifier.OPTION,    # left option
    0x0040: Modifier.OPTION,    # right option
}

_MODIFIER_SYMBOLS = [
    (Modifier.CONTROL, "⌃"),
    (Modifier.OPTION, "⌥"),
    (Modifier.SHIFT, "⇧"),
    (Modifier.COMMAND, "⌘"),
]

KEY_NAMES = {
    0: "A", 1: "S", 2: "D", 3: "F", 4: "H", 5: "G", 6: "Z", 7: "X", 8: "C", 9: "V",
    11: "B", 12: "Q", 13: "W", 14: "E", 15: "R", 16: "Y", 17: "T",
    18: "1", 19: "2", 20: "3", 21: "4", 22: "6", 23: "5", 24: "=", 25: "9",
    26: "7", 27: "-", 28: "8", 29: "0", 30: "]", 31: "O", 32: "U", 33: "[",
    34: "I", 35: "P", 36: "Return", 37: "L", 38: "J", 39: "'", 40: "K", 41: ";",
    42: "\\", 43: ",", 44: "/", 45: "N", 46: "M", 47: ".", 48: "Tab", 49: "Space",
    50: "`", 51: "Delete", 53: "Esc",
    122: "F1", 120: "F2", 99: "F3", 118: "F4", 96: "F5", 97: "F6",
    98: "F7", 100: "F8", 101: "F9", 109: "F10", 103: "F11", 111: "F12",
    105: "F13", 107: "F14", 113: "F15",
    123: "←", 124: "→", 125: "↓", 126: "↑",
}


def normalize_modifiers(raw_flags: int) -> Modifier:
    """
    Reduce raw event flags to the shortcut-relevant modifiers.

    Args:
        raw_flags: Modifier flags as delivered by the key event

    Returns:
        Combination of SHIFT, CONTROL, OPTION, COMMAND
    """
    flags = Modifier(int(raw_flags) & int(SHORTCUT_MODIFIERS))
    for bit, modifier in _DEVICE_BITS.items():
        if raw_flags & bit:
            flags |= modifier
    return flags


@dataclass(frozen=True)
class HotkeyBinding:
    """A key code plus normalized modifiers."""
    key_code: int
    modifiers: Modifier

    @property
    def display_string(self) -> str:
        symbols = "".join(symbol for flag, symbol in _MODIFIER_SYMBOLS if self.modifiers & flag)
        return symbols + KEY_NAMES.get(self.key_code, f"Key {self.key_code}")

    def to_dict(self) -> dict:
        return {"key_code": self.key_code, "modifier_flags": int(self.modifiers)}

    @classmethod
    def from_dict(cls, data) -> "HotkeyBinding | None":
        if not isinstance(data, dict):
            return None
        key_code = data.get("key_code")
        flags = data.get("modifier_flags", 0)
        if not isinstance(key_code, int) or not isinstance(flags, int):
            return None
        return cls(key_code=key_code, modifiers=normalize_modifiers(flags))


class CaptureOutcome(enum.Enum):
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    PENDING = "pending"


class CaptureSession:
    """One modal capture; only the registry's current session is live."""

    def __init__(self, registry: "HotkeyRegistry"):
        self._registry = registry
        self.pending: HotkeyBinding | None = None
        self.active = True

    def handle_key(self, key_code: int, raw_flags: int) -> CaptureOutcome:
        """
        Feed one key-down event into the capture.

        Returns:
            CANCELLED on escape without modifiers (capture ends),
            REJECTED for modifier-less or modifier-only keys,
            PENDING when a binding is ready to commit
        """
        if not self.active:
            return CaptureOutcome.CANCELLED

        flags = normalize_modifiers(raw_flags)
        if key_code == ESCAPE_KEY_CODE and not flags:
            self.cancel()
            return CaptureOutcome.CANCELLED

        if not flags or key_code in MODIFIER_ONLY_KEY_CODES:
            return CaptureOutcome.REJECTED

        self.pending = HotkeyBinding(key_code=key_code, modifiers=flags)
        return CaptureOutcome.PENDING

    def commit(self) -> HotkeyBinding | None:
        """Store the pending binding and end the capture."""
        if not self.active or self.pending is None:
            return None
        binding = self._registry.set_binding(self.pending.key_code, int(self.pending.modifiers))
        self._registry._end_capture(self)
        return binding

    def cancel(self) -> None:
        """End the capture without changing the stored binding."""
        self.pending = None
        self._registry._end_capture(self)

    def status_text(self, prompt: str = "Press a shortcut") -> str:
        if self.pending is None:
            return prompt
        return self.pending.display_string


class HotkeyRegistry:
    """
    Stores the global hotkey in preferences and runs capture sessions.

    Methods:
        set_binding(key_code, flags): Validate, normalize and store
        clear(): Remove the binding
        binding: Current binding or None
        display_text(placeholder): Binding for display
        start_capture(): Begin a modal capture session
    """

    def __init__(self, preferences: Preferences):
        self.preferences = preferences
        self._lock = threading.Lock()
        self._capture: CaptureSession | None = None

    @property
    def binding(self) -> HotkeyBinding | None:
        return HotkeyBinding.from_dict(self.preferences.get(PREFERENCE_KEY))

    def set_binding(self, key_code: int, raw_flags: int) -> HotkeyBinding:
        """
        Store a new global hotkey, replacing any previous one.

        Raises:
            InvalidInput: Bad key code, or a pure modifier key without modifiers
        """
        if not isinstance(key_code, int) or key_code < 0:
            raise InvalidInput(f"Invalid key code: {key_code!r}")
        flags = normalize_modifiers(raw_flags)
        if not flags and key_code in MODIFIER_ONLY_KEY_CODES:
            raise InvalidInput("A modifier key alone cannot be the shortcut")

        binding = HotkeyBinding(key_code=key_code, modifiers=flags)
        self.preferences.set(PREFERENCE_KEY, binding.to_dict())
        logger.info(f"Global hotkey set to {binding.display_string}")
        return binding

    def clear(self) -> None:
        self.preferences.remove(PREFERENCE_KEY)

    def display_text(self, placeholder: str = "Not set") -> str:
        binding = self.binding
        if binding is None:
            return placeholder
        if not binding.modifiers:
            return f"{binding.display_string} • no modifier"
        return binding.display_string

    def start_capture(self) -> CaptureSession:
        """Open a capture session, silently cancelling any earlier one."""
        with self._lock:
            previous = self._capture
            session = CaptureSession(self)
            self._capture = session
        if previous is not None:
            previous.pending = None
            previous.active = False
        return session

    @property
    def capturing(self) -> bool:
        with self._lock:
            return self._capture is not None

    def _end_capture(self, session: CaptureSession) -> None:
        session.active = False
        with self._lock:
            if self._capture is session:
                self._capture = None
