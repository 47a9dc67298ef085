# ABOUTME: Declares the tunable gauge parameters, their bounds, and the persisted settings store.
# ABOUTME: Applies the reset-to-defaults policy when a stored settings version is stale.

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import yaml

SCRIPT_ID = "ganbarometer"
SETTINGS_VERSION = "3.0"

MAX_INTERVAL_RANGE_HOURS = 168
# Five years; keeps the lookback cutoff a representable datetime.
MAX_INTERVAL_HOURS = 24 * 365 * 5

# name -> (minimum, maximum); interval is checked separately.
SETTING_BOUNDS: Dict[str, Tuple[float, float]] = {
    "session_interval_max": (1, 10),
    "normal_apprentice_qty": (30, 500),
    "new_kanji_weighting": (0.0, 0.1),
    "normal_miss_percent": (0, 50),
    "extra_misses_weighting": (0.0, 0.1),
    "max_pace": (10, 500),
}

_COLOR = re.compile(r"^(#[0-9a-fA-F]{3}|#[0-9a-fA-F]{6}|#[0-9a-fA-F]{8}|[a-zA-Z]+)$")


class OutOfRangeConfiguration(ValueError):
    """A setting lies outside its declared bounds."""


def interval_is_valid(hours: int) -> bool:
    if not 1 <= hours <= MAX_INTERVAL_HOURS:
        return False
    return hours <= MAX_INTERVAL_RANGE_HOURS or hours % 24 == 0


@dataclass(frozen=True)
class Settings:
    interval: int = 72
    session_interval_max: float = 10.0
    normal_apprentice_qty: int = 100
    new_kanji_weighting: float = 0.05
    normal_miss_percent: float = 20.0
    extra_misses_weighting: float = 0.03
    max_pace: int = 300
    background_color: str = "#f4f4f4"
    debug: bool = False
    version: str = SETTINGS_VERSION

    def __post_init__(self) -> None:
        if not interval_is_valid(self.interval):
            raise OutOfRangeConfiguration(
                f"interval={self.interval} must be 1-{MAX_INTERVAL_RANGE_HOURS} hours "
                f"or a multiple of 24 up to {MAX_INTERVAL_HOURS}"
            )
        for name, (low, high) in SETTING_BOUNDS.items():
            value = getattr(self, name)
            if not low <= value <= high:
                raise OutOfRangeConfiguration(f"{name}={value} outside [{low}, {high}]")
        if not _COLOR.match(self.background_color):
            raise OutOfRangeConfiguration(f"background_color={self.background_color!r} is not a color")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any],
        defaults: Optional["Settings"] = None,
        clamp: bool = True,
    ) -> "Settings":
        """
        Build settings from a loosely typed mapping (YAML contents, CLI input).

        Missing keys come from ``defaults`` except ``version``, which stays
        empty so that an unversioned mapping reads as stale. Unknown keys are
        ignored and values that cannot be coerced fall back to the default.
        With ``clamp`` set, numeric values are pulled into their bounds instead
        of raising OutOfRangeConfiguration.
        """

        base = (defaults or cls()).to_dict()
        resolved: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "version":
                resolved["version"] = str(values.get("version", "") or "")
                continue
            fallback = base[f.name]
            if f.name not in values:
                resolved[f.name] = fallback
                continue
            try:
                value = _coerce(values[f.name], type(fallback))
            except (TypeError, ValueError):
                value = fallback
            if clamp:
                value = _clamp(f.name, value, fallback)
            resolved[f.name] = value
        return cls(**resolved)


def _coerce(value: Any, kind: type) -> Any:
    if kind is bool:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "yes", "on", "1"}:
                return True
            if lowered in {"false", "no", "off", "0"}:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        return bool(value)
    if kind is int:
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"not a finite number: {value!r}")
        return int(round(number))
    if kind is float:
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"not a finite number: {value!r}")
        return number
    return kind(value)


def _clamp(name: str, value: Any, fallback: Any) -> Any:
    if name == "interval":
        if value < 1:
            return 1
        if value > MAX_INTERVAL_HOURS:
            return MAX_INTERVAL_HOURS
        if not interval_is_valid(value):
            return value - value % 24
        return value
    if name in SETTING_BOUNDS:
        low, high = SETTING_BOUNDS[name]
        clamped = min(max(value, low), high)
        return type(fallback)(clamped)
    if name == "background_color" and not _COLOR.match(str(value)):
        return fallback
    return value


class SettingsStore(Protocol):
    def load(self, script_id: str, defaults: Settings) -> Settings: ...

    def save(self, script_id: str, settings: Settings) -> None: ...


class MemorySettingsStore:
    """Keeps raw settings mappings in memory, keyed by script id."""

    def __init__(self, initial: Optional[Dict[str, Mapping[str, Any]]] = None):
        self.data: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (initial or {}).items()}

    def load(self, script_id: str, defaults: Settings) -> Settings:
        raw = self.data.get(script_id)
        if raw is None:
            return defaults
        return Settings.from_mapping(raw, defaults=defaults)

    def save(self, script_id: str, settings: Settings) -> None:
        self.data[script_id] = settings.to_dict()


class YamlSettingsStore:
    """Persists one YAML file per script id inside ``directory``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, script_id: str) -> Path:
        return self.directory / f"{script_id}.yaml"

    def load(self, script_id: str, defaults: Settings) -> Settings:
        path = self.path_for(script_id)
        if not path.exists():
            return defaults
        try:
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError:
            raw = None
        if not isinstance(raw, dict):
            # Unreadable contents carry no version and are reset by load_settings.
            raw = {}
        return Settings.from_mapping(raw, defaults=defaults)

    def save(self, script_id: str, settings: Settings) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        with open(self.path_for(script_id), "w", encoding="utf-8") as f:
            yaml.safe_dump(settings.to_dict(), f, sort_keys=False)


def load_settings(
    store: SettingsStore, script_id: str = SCRIPT_ID
) -> Tuple[Settings, Optional[str]]:
    """
    Load settings, resetting everything to defaults when the stored version is stale.

    Returns the settings plus a notice for the user when a reset happened.
    Old settings are never merged field by field into the new schema.
    """

    defaults = Settings()
    loaded = store.load(script_id, defaults)
    if loaded.version == SETTINGS_VERSION:
        return loaded, None

    store.save(script_id, defaults)
    previous = loaded.version or "unversioned"
    notice = (
        f"Settings were reset to defaults: stored version {previous} "
        f"does not match {SETTINGS_VERSION}. Please review your settings."
    )
    return defaults, notice


def update_setting(store: SettingsStore, key: str, value: Any, script_id: str = SCRIPT_ID) -> Settings:
    """Change one setting, clamped to its bounds, and persist the result."""

    current, _ = load_settings(store, script_id)
    if key not in current.to_dict() or key == "version":
        raise KeyError(key)
    updated = Settings.from_mapping({**current.to_dict(), key: value}, defaults=current)
    store.save(script_id, updated)
    return updated
