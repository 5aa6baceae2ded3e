import os
from dataclasses import dataclass, field, fields, replace
from typing import Optional, Tuple

from scratchcard.errors import ConfigError

# Defaults (overridable through SCRATCH_* environment variables)
REVEAL_THRESHOLD = 70.0
BRUSH_WIDTH      = 50
GAP_THRESHOLD    = 8
DAB_SPACING      = 4
REGEN_INTERVAL_MS = 5000
API_BASE_URL     = "http://localhost:5000/api"


@dataclass(frozen=True)
class ScratchConfig:
    reveal_threshold: float = REVEAL_THRESHOLD   # percent erased that auto-reveals
    brush_width: float = BRUSH_WIDTH             # logical units, scaled by pixel ratio
    gap_threshold: float = GAP_THRESHOLD
    dab_spacing: float = DAB_SPACING

    regen_interval_ms: int = REGEN_INTERVAL_MS
    pulse_speed: float = 0.002                   # radians per ms
    pulse_base: float = 0.02
    pulse_amplitude: float = 0.015

    frame_ms: int = 16
    sample_defer_frames: int = 3
    final_sample_delays_ms: Tuple[int, ...] = (150, 450)
    animator_cooldown_ms: int = 600

    api_base_url: str = API_BASE_URL
    api_token: Optional[str] = field(default=None, repr=False)
    request_timeout: float = 10.0

    def __post_init__(self):
        if not 0 < self.reveal_threshold < 100:
            raise ConfigError(f"reveal_threshold must be in (0, 100), got {self.reveal_threshold}")
        for name in ("brush_width", "gap_threshold", "dab_spacing", "frame_ms", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.dab_spacing > self.gap_threshold:
            raise ConfigError("dab_spacing must not exceed gap_threshold")
        if self.sample_defer_frames < 1:
            raise ConfigError("sample_defer_frames must be >= 1 (sampling must trail the draw)")
        if not self.final_sample_delays_ms:
            raise ConfigError("at least one post-gesture sample is required")
        if self.animator_cooldown_ms <= max(self.final_sample_delays_ms):
            raise ConfigError("animator_cooldown_ms must exceed the last post-gesture sample delay")

    def with_overrides(self, **kw) -> "ScratchConfig":
        return replace(self, **kw)


_ENV_KEYS = {
    "reveal_threshold":     "SCRATCH_REVEAL_THRESHOLD",
    "brush_width":          "SCRATCH_BRUSH_WIDTH",
    "gap_threshold":        "SCRATCH_GAP_THRESHOLD",
    "dab_spacing":          "SCRATCH_DAB_SPACING",
    "regen_interval_ms":    "SCRATCH_REGEN_INTERVAL_MS",
    "animator_cooldown_ms": "SCRATCH_ANIMATOR_COOLDOWN_MS",
    "api_base_url":         "SCRATCH_API_URL",
    "api_token":            "SCRATCH_API_TOKEN",
    "request_timeout":      "SCRATCH_REQUEST_TIMEOUT",
}


def _coerce(name: str, raw: str, types: dict):
    kind = types[name]
    try:
        if kind is int:
            return int(raw)
        if kind is float:
            return float(raw)
    except ValueError as e:
        raise ConfigError(f"{_ENV_KEYS[name]}={raw!r} is not a valid {name}") from e
    return raw


def load_config(environ=None, **overrides) -> ScratchConfig:
    env = os.environ if environ is None else environ
    types = {f.name: f.type for f in fields(ScratchConfig)}
    kw = {}
    for name, key in _ENV_KEYS.items():
        raw = env.get(key, "").strip()
        if raw:
            kw[name] = _coerce(name, raw, types)
    kw.update(overrides)
    return ScratchConfig(**kw)
