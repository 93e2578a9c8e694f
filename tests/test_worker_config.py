from decimal import Decimal

import pytest
from pydantic import ValidationError

from botfleet.config.worker import (
    DEFAULT_TOKEN_ADDRESS,
    WorkerConfig,
    canonical_fields,
    default_config,
    render_worker_env,
    slot_default,
    start_violations,
)
from botfleet.types import SlotId

VALID_KEY = "5" * 88


def test_slot_defaults_follow_presets() -> None:
    assert slot_default(SlotId.BOT1).name == "Balanced Bot"
    aggressive = slot_default(SlotId.BOT2)
    assert aggressive.buy_percentage == 75
    assert aggressive.max_slippage == Decimal("0.08")
    assert slot_default(SlotId.BOT3).trade_interval_min == 120


def test_unknown_profile_falls_back_to_balanced() -> None:
    assert default_config("yolo") == default_config("balanced")


def test_defaults_are_fresh_copies() -> None:
    first = default_config()
    first.private_key = "mutated"
    assert default_config().private_key == ""


def test_canonical_fields_accepts_both_spellings() -> None:
    out = canonical_fields(
        {
            "tokenAddress": "X",
            "sol_amount_min": "0.5",
            "rpcUrl": None,
            "lastUpdated": "2024-01-01T00:00:00Z",
            "shoeSize": 44,
        }
    )
    assert out == {"token_address": "X", "sol_amount_min": "0.5"}


def test_model_rejects_non_positive_amounts() -> None:
    with pytest.raises(ValidationError):
        WorkerConfig(sol_amount_min=Decimal("-1"))
    with pytest.raises(ValidationError):
        WorkerConfig(buy_percentage=150)


def test_default_preset_requires_credential() -> None:
    errors = start_violations(slot_default(SlotId.BOT1))
    assert errors == ["Private key is required"]


def test_placeholder_credential_rejected() -> None:
    cfg = default_config().model_copy(update={"private_key": "your_private_key_here"})
    errors = start_violations(cfg)
    assert "Please replace the placeholder with your actual private key" in errors
    assert "Private key must be in Base58 format or comma-separated bytes" in errors


@pytest.mark.parametrize(
    "key",
    [VALID_KEY, ",".join(["7"] * 64), ", ".join(["255"] * 32)],
)
def test_accepted_credential_formats(key: str) -> None:
    cfg = default_config().model_copy(update={"private_key": key})
    assert start_violations(cfg) == []


@pytest.mark.parametrize("key", ["abc", ",".join(["1"] * 10), ",".join(["256"] * 32)])
def test_malformed_credential_rejected(key: str) -> None:
    cfg = default_config().model_copy(update={"private_key": key})
    assert start_violations(cfg) == ["Private key must be in Base58 format or comma-separated bytes"]


def test_missing_token_address_reported_alongside_credential() -> None:
    cfg = default_config().model_copy(update={"token_address": "  "})
    errors = start_violations(cfg)
    assert errors[:2] == ["Private key is required", "Token address is required"]


def test_range_rules_are_added_to_violations() -> None:
    cfg = default_config().model_copy(
        update={
            "private_key": VALID_KEY,
            "sol_amount_min": Decimal("0.5"),
            "sol_amount_max": Decimal("0.5"),
            "trade_interval_min": 300,
            "trade_interval_max": 60,
            "buy_percentage": 100,
        }
    )
    assert start_violations(cfg) == [
        "SOL Amount Max must be greater than SOL Amount Min",
        "Trade Interval Max must be greater than Trade Interval Min",
        "Buy Percentage must be between 1 and 99",
    ]


def test_render_worker_env() -> None:
    cfg = default_config().model_copy(update={"private_key": VALID_KEY})
    text = render_worker_env(cfg)
    lines = text.splitlines()
    assert lines[0] == "# Generated from JSON configuration"
    assert f"PRIVATE_KEY={VALID_KEY}" in lines
    assert f"TOKEN_ADDRESS={DEFAULT_TOKEN_ADDRESS}" in lines
    assert "SOL_AMOUNT_MIN=0.0001" in lines
    assert "TRADE_INTERVAL_MAX=180" in lines
    assert "BUY_PERCENTAGE=60" in lines
    assert "MIN_SOL_BALANCE=0.02" in lines
    assert text.endswith("\n")
