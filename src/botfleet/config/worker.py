from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from botfleet.types import SlotId

Profile = Literal["balanced", "aggressive", "conservative"]

SLOT_PROFILES: dict[SlotId, Profile] = {
    SlotId.BOT1: "balanced",
    SlotId.BOT2: "aggressive",
    SlotId.BOT3: "conservative",
}

DEFAULT_TOKEN_ADDRESS = "CV9oNz7rjTqCsWHHgqWhoZaaw1LSX96H81Vk5p94Hc2E"
DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"

PLACEHOLDER_KEYS = frozenset(
    {
        "REPLACE_WITH_YOUR_ACTUAL_PRIVATE_KEY",
        "your_private_key_here",
        "your_actual_private_key_here",
    }
)

_BASE58_KEY = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{87,88}$")
_MIN_KEY_BYTES = 32


class WorkerConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    name: str = "Balanced Bot"
    strategy: str = ""
    private_key: str = ""
    token_address: str = DEFAULT_TOKEN_ADDRESS
    rpc_url: str = DEFAULT_RPC_URL
    sol_amount_min: Decimal = Field(default=Decimal("0.001"), gt=0)
    sol_amount_max: Decimal = Field(default=Decimal("0.01"), gt=0)
    trade_interval_min: int = Field(default=30, gt=0)
    trade_interval_max: int = Field(default=300, gt=0)
    buy_percentage: int = Field(default=60, ge=0, le=100)
    max_slippage: Decimal = Field(default=Decimal("0.05"), ge=0)
    min_sol_balance: Decimal = Field(default=Decimal("0.1"), ge=0)
    last_updated: Optional[datetime] = None

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


_PRESETS: dict[str, dict[str, Any]] = {
    "balanced": {
        "name": "Balanced Bot",
        "strategy": "Balanced (60% buy, 40% sell)",
        "sol_amount_min": "0.0001",
        "sol_amount_max": "0.001",
        "trade_interval_min": 60,
        "trade_interval_max": 180,
        "buy_percentage": 60,
        "max_slippage": "0.05",
        "min_sol_balance": "0.02",
    },
    "aggressive": {
        "name": "Aggressive Bot",
        "strategy": "Aggressive (75% buy, 25% sell)",
        "sol_amount_min": "0.001",
        "sol_amount_max": "0.01",
        "trade_interval_min": 30,
        "trade_interval_max": 120,
        "buy_percentage": 75,
        "max_slippage": "0.08",
        "min_sol_balance": "0.05",
    },
    "conservative": {
        "name": "Conservative Bot",
        "strategy": "Conservative (55% buy, 45% sell)",
        "sol_amount_min": "0.0001",
        "sol_amount_max": "0.0005",
        "trade_interval_min": 120,
        "trade_interval_max": 300,
        "buy_percentage": 55,
        "max_slippage": "0.03",
        "min_sol_balance": "0.01",
    },
}


def default_config(profile: str = "balanced") -> WorkerConfig:
    """Return a fresh copy of a named preset; unknown names fall back to balanced."""
    preset = _PRESETS.get(profile, _PRESETS["balanced"])
    return WorkerConfig.model_validate(preset)


def slot_default(slot: SlotId) -> WorkerConfig:
    return default_config(SLOT_PROFILES[slot])


def canonical_fields(partial: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase or snake_case keys onto field names, dropping unknowns and nulls."""
    by_alias = {
        (info.alias or name): name for name, info in WorkerConfig.model_fields.items()
    }
    out: dict[str, Any] = {}
    for key, value in partial.items():
        if value is None or key == "lastUpdated" or key == "last_updated":
            continue
        if key in WorkerConfig.model_fields:
            out[key] = value
        elif key in by_alias:
            out[by_alias[key]] = value
    return out


def _is_comma_byte_list(key: str) -> bool:
    parts = key.split(",")
    if len(parts) < _MIN_KEY_BYTES:
        return False
    for part in parts:
        part = part.strip()
        if not part.isdigit() or int(part) > 255:
            return False
    return True


def start_violations(cfg: WorkerConfig) -> list[str]:
    """Every rule the config breaks that would stop a worker from starting."""
    errors: list[str] = []
    key = cfg.private_key.strip()

    if not key:
        errors.append("Private key is required")
    if not cfg.token_address.strip():
        errors.append("Token address is required")

    if key:
        if key in PLACEHOLDER_KEYS:
            errors.append("Please replace the placeholder with your actual private key")
        if not _BASE58_KEY.match(key) and not _is_comma_byte_list(key):
            errors.append("Private key must be in Base58 format or comma-separated bytes")

    if cfg.sol_amount_min >= cfg.sol_amount_max:
        errors.append("SOL Amount Max must be greater than SOL Amount Min")
    if cfg.trade_interval_min >= cfg.trade_interval_max:
        errors.append("Trade Interval Max must be greater than Trade Interval Min")
    if not (1 <= cfg.buy_percentage <= 99):
        errors.append("Buy Percentage must be between 1 and 99")
    return errors


def _fmt(value: Decimal) -> str:
    return format(value, "f")


def render_worker_env(cfg: WorkerConfig) -> str:
    lines = [
        "# Generated from JSON configuration",
        f"PRIVATE_KEY={cfg.private_key}",
        f"TOKEN_ADDRESS={cfg.token_address or DEFAULT_TOKEN_ADDRESS}",
        f"RPC_URL={cfg.rpc_url or DEFAULT_RPC_URL}",
        f"SOL_AMOUNT_MIN={_fmt(cfg.sol_amount_min)}",
        f"SOL_AMOUNT_MAX={_fmt(cfg.sol_amount_max)}",
        f"TRADE_INTERVAL_MIN={cfg.trade_interval_min}",
        f"TRADE_INTERVAL_MAX={cfg.trade_interval_max}",
        f"BUY_PERCENTAGE={cfg.buy_percentage}",
        f"MAX_SLIPPAGE={_fmt(cfg.max_slippage)}",
        f"MIN_SOL_BALANCE={_fmt(cfg.min_sol_balance)}",
    ]
    return "\n".join(lines) + "\n"
