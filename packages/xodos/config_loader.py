"""Engine configuration: defaults, JSON overlay, UTF-8 BOM tolerant loading.

PowerShell 5.1 writes UTF-8 BOM by default when using Out-File.  Plain
``json.loads(path.read_text(encoding="utf-8"))`` rejects such files with a
JSONDecodeError, so every config file goes through :func:`load_json_from_path`.

JSON config files only need the keys they override::

    {
      "tick_interval_seconds": 1.0,
      "tier_limits": {"1": "2500", "2": "50000", "3": null},
      "volatility": {"High": "0.02"}
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union

#: Per-trade notional ceiling by KYC level (``None`` = unlimited).
DEFAULT_TIER_LIMITS: dict[int, Optional[Decimal]] = {
    1: Decimal("5000"),
    2: Decimal("50000"),
    3: None,
}

#: Maximum per-tick drift as a fraction of price, by risk tier.
DEFAULT_VOLATILITY: dict[str, Decimal] = {
    "High": Decimal("0.015"),
    "Medium": Decimal("0.008"),
    "Low": Decimal("0.002"),
}

#: Demo listings published when a fresh engine starts without a state file.
DEFAULT_SEED_ASSETS: tuple[dict[str, Any], ...] = (
    {"asset_id": "dangcem", "ticker": "DANGCEM", "name": "Dangote Cement",
     "category": "Equity", "risk_tier": "Medium", "price": "450.00"},
    {"asset_id": "mtnn", "ticker": "MTNN", "name": "MTN Nigeria",
     "category": "Equity", "risk_tier": "Low", "price": "210.50"},
    {"asset_id": "fgn28", "ticker": "FGN28", "name": "FGN Savings Bond 2028",
     "category": "Fixed Income", "risk_tier": "Low", "price": "98.40"},
    {"asset_id": "lkireit", "ticker": "LKIREIT", "name": "Lekki Residential REIT",
     "category": "Real Estate", "risk_tier": "Medium", "price": "25.00"},
    {"asset_id": "agrofund", "ticker": "AGROPE", "name": "AgroTech Growth Fund",
     "category": "Private Market", "risk_tier": "High", "price": "12.40"},
)


class ConfigLoadError(ValueError):
    """Raised when config loading or parsing fails."""


@dataclass(frozen=True)
class EngineConfig:
    """Tunable constants for the simulator, authorizer and engine.

    Attributes:
        tier_limits:           KYC level -> max notional per trade (None = no cap).
        max_leverage:          Highest leverage multiple the authorizer accepts.
        tick_interval_seconds: Price ticker cadence.
        spread_fraction:       Total bid/ask spread as a fraction of price.
        price_floor:           Prices never fall below this value.
        up_probability:        Chance a tick drifts upward (slight bullish bias).
        volatility:            Risk tier -> max drift fraction per tick.
        seed_assets:           Listings created for a brand-new session.
    """

    tier_limits: dict[int, Optional[Decimal]] = field(
        default_factory=lambda: dict(DEFAULT_TIER_LIMITS)
    )
    max_leverage: int = 10
    tick_interval_seconds: float = 2.5
    spread_fraction: Decimal = Decimal("0.005")
    price_floor: Decimal = Decimal("0.01")
    up_probability: float = 0.52
    volatility: dict[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_VOLATILITY)
    )
    seed_assets: tuple[dict[str, Any], ...] = DEFAULT_SEED_ASSETS

    def tier_limit(self, kyc_level: int) -> Optional[Decimal]:
        """Return the notional ceiling for *kyc_level*.

        Levels above the highest configured tier inherit that tier's limit;
        unknown lower levels fall back to the strictest configured limit.
        """
        if kyc_level in self.tier_limits:
            return self.tier_limits[kyc_level]
        levels = sorted(self.tier_limits)
        if not levels:
            return None
        if kyc_level > levels[-1]:
            return self.tier_limits[levels[-1]]
        return self.tier_limits[levels[0]]


def load_json_from_path(path: Union[str, Path]) -> dict:
    """Load a JSON file, accepting UTF-8 BOM (as produced by PowerShell 5.1).

    Raises:
        ConfigLoadError: If the file is not found or contains invalid JSON.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8-sig")
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"config file not found: {p}") from exc

    try:
        result = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"config file is not valid JSON ({p}): {exc}") from exc

    if not isinstance(result, dict):
        raise ConfigLoadError(
            f"config file must contain a JSON object, got {type(result).__name__}: {p}"
        )
    return result


def load_json_from_string(raw: str) -> dict:
    """Parse a JSON string into a dict, tolerating a leading BOM character.

    Raises:
        ConfigLoadError: If the string is not valid JSON or not an object.
    """
    original_raw = raw
    raw = raw.strip()
    if raw.startswith("\ufeff"):
        raw = raw[1:]
    try:
        result = json.loads(raw)
    except json.JSONDecodeError as exc:
        snippet = original_raw[:120]
        if len(original_raw) > 120:
            snippet += "..."
        raise ConfigLoadError(
            "config string is not valid JSON: "
            f"{exc} (raw_len={len(original_raw)}, raw_prefix={snippet!r})"
        ) from exc

    if not isinstance(result, dict):
        raise ConfigLoadError(
            f"config string must be a JSON object, got {type(result).__name__}"
        )
    return result


def _as_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigLoadError(f"{key} must be numeric, got {value!r}") from exc


def engine_config_from_dict(raw: dict[str, Any]) -> EngineConfig:
    """Overlay *raw* on the defaults and return a validated :class:`EngineConfig`.

    Raises:
        ConfigLoadError: unknown keys or values of the wrong shape.
    """
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigLoadError(f"unknown config keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}

    if "tier_limits" in raw:
        limits = raw["tier_limits"]
        if not isinstance(limits, dict):
            raise ConfigLoadError("tier_limits must be an object of level -> limit")
        merged = dict(DEFAULT_TIER_LIMITS)
        for level, limit in limits.items():
            try:
                level_int = int(level)
            except (TypeError, ValueError) as exc:
                raise ConfigLoadError(f"tier level must be an integer, got {level!r}") from exc
            merged[level_int] = None if limit is None else _as_decimal(limit, f"tier_limits[{level}]")
        kwargs["tier_limits"] = merged

    if "volatility" in raw:
        vol = raw["volatility"]
        if not isinstance(vol, dict):
            raise ConfigLoadError("volatility must be an object of tier -> fraction")
        merged_vol = dict(DEFAULT_VOLATILITY)
        for tier, frac in vol.items():
            merged_vol[str(tier)] = _as_decimal(frac, f"volatility[{tier}]")
        kwargs["volatility"] = merged_vol

    if "max_leverage" in raw:
        max_lev = raw["max_leverage"]
        if isinstance(max_lev, bool) or not isinstance(max_lev, int) or max_lev < 1:
            raise ConfigLoadError(f"max_leverage must be an integer >= 1, got {max_lev!r}")
        kwargs["max_leverage"] = max_lev

    if "tick_interval_seconds" in raw:
        try:
            interval = float(raw["tick_interval_seconds"])
        except (TypeError, ValueError) as exc:
            raise ConfigLoadError("tick_interval_seconds must be numeric") from exc
        if interval <= 0:
            raise ConfigLoadError("tick_interval_seconds must be positive")
        kwargs["tick_interval_seconds"] = interval

    for key in ("spread_fraction", "price_floor"):
        if key in raw:
            value = _as_decimal(raw[key], key)
            if value <= 0:
                raise ConfigLoadError(f"{key} must be positive, got {raw[key]!r}")
            kwargs[key] = value

    if "up_probability" in raw:
        try:
            prob = float(raw["up_probability"])
        except (TypeError, ValueError) as exc:
            raise ConfigLoadError("up_probability must be numeric") from exc
        if not 0.0 <= prob <= 1.0:
            raise ConfigLoadError(f"up_probability must be within [0, 1], got {prob}")
        kwargs["up_probability"] = prob

    if "seed_assets" in raw:
        seeds = raw["seed_assets"]
        if not isinstance(seeds, list) or not all(isinstance(s, dict) for s in seeds):
            raise ConfigLoadError("seed_assets must be a list of objects")
        kwargs["seed_assets"] = tuple(seeds)

    return EngineConfig(**kwargs)


def load_engine_config(
    *,
    config_path: Union[str, Path, None] = None,
    config_json: Union[str, None] = None,
) -> EngineConfig:
    """Load engine config from a file path, a JSON string, or return defaults.

    Exactly one of ``config_path`` and ``config_json`` may be provided.

    Raises:
        ConfigLoadError: If both arguments are provided, or if loading fails.
    """
    if config_path is not None and config_json is not None:
        raise ConfigLoadError(
            "Provide only one of config_path or config_json, not both."
        )

    if config_path is not None:
        return engine_config_from_dict(load_json_from_path(config_path))

    if config_json is not None:
        return engine_config_from_dict(load_json_from_string(config_json))

    return EngineConfig()
