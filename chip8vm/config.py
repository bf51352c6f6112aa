"""Emulator configuration: display resolution, timer pacing and quirks."""

from dataclasses import dataclass, field
from typing import Dict, Optional
import json

from .machine import DISPLAY_WIDTH, DISPLAY_HEIGHT

# All off gives the classic interpreter semantics
DEFAULT_QUIRKS = {
    'memory': False,     # Fx55/Fx65 increment I register
    'jumping': False,    # Bnnn uses vX instead of v0
    'shifting': False,   # 8xy6/8xyE use vY or vX (False = use vX)
    'logic': False,      # 8xy1/8xy2/8xy3 reset vF to 0
    'clipping': False,   # Sprites clip at the screen edge instead of wrapping
}


def resolve_quirks(quirks: Optional[Dict[str, bool]] = None) -> Dict[str, bool]:
    """Merge user quirks over the defaults, rejecting unknown names"""
    resolved = dict(DEFAULT_QUIRKS)
    if not quirks:
        return resolved

    unknown = sorted(set(quirks) - set(DEFAULT_QUIRKS))
    if unknown:
        raise ValueError(f"Unknown quirks: {', '.join(unknown)}")

    for name, enabled in quirks.items():
        resolved[name] = bool(enabled)
    return resolved


@dataclass
class EmulatorConfig:
    """Settings for a single emulator instance."""
    display_width: int = DISPLAY_WIDTH
    display_height: int = DISPLAY_HEIGHT
    timer_interval: int = 1  # Cycles per timer decrement
    quirks: Dict[str, bool] = field(default_factory=dict)
    seed: Optional[int] = None
    debug_file: Optional[str] = None

    def __post_init__(self):
        if self.display_width <= 0 or self.display_height <= 0:
            raise ValueError(
                f"Display must be at least 1x1, got {self.display_width}x{self.display_height}"
            )
        if self.timer_interval <= 0:
            raise ValueError(f"timer_interval must be positive, got {self.timer_interval}")
        self.quirks = resolve_quirks(self.quirks)

    def to_dict(self) -> dict:
        return {
            "display_width": self.display_width,
            "display_height": self.display_height,
            "timer_interval": self.timer_interval,
            "quirks": dict(self.quirks),
            "seed": self.seed,
            "debug_file": self.debug_file,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EmulatorConfig':
        return cls(
            display_width=data.get("display_width", DISPLAY_WIDTH),
            display_height=data.get("display_height", DISPLAY_HEIGHT),
            timer_interval=data.get("timer_interval", 1),
            quirks=data.get("quirks") or {},
            seed=data.get("seed"),
            debug_file=data.get("debug_file"),
        )

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> 'EmulatorConfig':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)
