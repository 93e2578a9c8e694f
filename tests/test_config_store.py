import json
from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from botfleet.config import ConfigStore
from botfleet.types import SlotId

VALID_KEY = "5" * 88


def test_seed_defaults_writes_one_config_per_slot(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()

    for slot in SlotId:
        assert store.config_path(slot).exists()
    raw = json.loads(store.config_path(SlotId.BOT2).read_text(encoding="utf-8"))
    assert raw["name"] == "Aggressive Bot"
    assert raw["buyPercentage"] == 75
    assert raw["lastUpdated"]


def test_seed_defaults_keeps_existing_records(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()
    store.save(SlotId.BOT1, {"tokenAddress": "X"})

    store.seed_defaults()

    assert store.load(SlotId.BOT1).token_address == "X"


def test_load_missing_record_returns_slot_default(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "never-created")
    cfg = store.load(SlotId.BOT3)
    assert cfg.name == "Conservative Bot"
    assert cfg.last_updated is None


def test_load_corrupt_record_returns_slot_default(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()
    store.config_path(SlotId.BOT1).write_text("{not json", encoding="utf-8")

    assert store.load(SlotId.BOT1).name == "Balanced Bot"


def test_save_merges_over_stored_record(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()
    store.save(SlotId.BOT1, {"privateKey": VALID_KEY, "buyPercentage": 70})
    before = store.load(SlotId.BOT1)

    store.save(SlotId.BOT1, {"tokenAddress": "X"})
    after = store.load(SlotId.BOT1)

    assert after.token_address == "X"
    assert after.private_key == VALID_KEY
    assert after.buy_percentage == 70
    assert after.sol_amount_min == Decimal("0.0001")
    assert after.model_dump(exclude={"token_address", "last_updated"}) == before.model_dump(
        exclude={"token_address", "last_updated"}
    )


def test_save_rejects_invalid_values_and_keeps_record(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()
    before = store.config_path(SlotId.BOT1).read_text(encoding="utf-8")

    with pytest.raises(ValidationError):
        store.save(SlotId.BOT1, {"solAmountMin": -1})

    assert store.config_path(SlotId.BOT1).read_text(encoding="utf-8") == before


def test_save_into_removed_directory_raises(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "gone")
    with pytest.raises(OSError):
        store.save(SlotId.BOT1, {"tokenAddress": "X"})
    assert not store.directory.exists()


def test_validate_for_start_on_fresh_tenant(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()

    report = store.validate_for_start(SlotId.BOT1)

    assert report.is_valid is False
    assert "Private key is required" in report.errors


def test_validate_for_start_after_credential_saved(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()
    store.save(SlotId.BOT2, {"privateKey": VALID_KEY})

    report = store.validate_for_start(SlotId.BOT2)

    assert report.is_valid is True
    assert report.errors == []
    assert report.config is not None
    assert report.config.private_key == VALID_KEY


def test_materialize_and_discard_worker_file(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()
    store.save(SlotId.BOT1, {"privateKey": VALID_KEY, "tokenAddress": "X"})

    path = store.materialize_for_worker(SlotId.BOT1)

    assert path is not None
    assert path.is_absolute()
    text = path.read_text(encoding="utf-8")
    assert f"PRIVATE_KEY={VALID_KEY}" in text
    assert "TOKEN_ADDRESS=X" in text

    store.discard_materialized(SlotId.BOT1)
    assert not path.exists()
    store.discard_materialized(SlotId.BOT1)


def test_materialize_fails_without_directory(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "gone")
    assert store.materialize_for_worker(SlotId.BOT1) is None


def test_cleanup_removes_directory_and_is_repeatable(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "t1")
    store.seed_defaults()

    store.cleanup()
    store.cleanup()

    assert not store.directory.exists()
