from dataclasses import replace
from pathlib import Path

import pytest

yaml = pytest.importorskip("yaml")

from trade_journal.config import freeze_config, load_config, serialize_config, verify_config_lock
from trade_journal.ledger import InMemoryLotStore, SQLiteLotStore
from trade_journal.market_data import FinnhubProvider, PolygonProvider
from trade_journal.runtime import build_gateway, build_services, build_store, create_run_context

CONFIG_PATH = Path(__file__).resolve().parents[1] / "configs" / "journal_v1.yaml"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "journal.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_sample():
    config = load_config(CONFIG_PATH)
    assert config.name == "trade_journal"
    assert config.version == "1"
    assert [provider.name for provider in config.market_data.providers] == ["polygon", "finnhub"]
    assert config.market_data.max_attempts == 2
    assert config.market_data.live_cache_ttl_seconds == 15
    assert config.market_data.quote_cache_ttl_seconds == 15
    assert config.market_data.cache_max_entries == 10000
    assert config.verification.batch_size == 5
    assert config.ledger.duplicate_window_seconds == 5
    assert serialize_config(config)["ledger"]["store"] == "sqlite"


def test_freeze_and_verify(tmp_path):
    target = tmp_path / "journal_v1.yaml"
    target.write_text(CONFIG_PATH.read_text(encoding="utf-8"), encoding="utf-8")

    lock_path = freeze_config(target)
    assert verify_config_lock(target, lock_path)

    target.write_text(target.read_text(encoding="utf-8") + "\n# edited\n", encoding="utf-8")
    assert not verify_config_lock(target, lock_path)


def test_missing_required_key(tmp_path):
    path = _write(tmp_path, "name: journal\nversion: 1\n")
    with pytest.raises(ValueError, match="market_data"):
        load_config(path)


def test_invalid_values_rejected(tmp_path):
    base = "name: j\nversion: 1\nmarket_data:\n  providers:\n    - name: polygon\n"
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, base + "ledger:\n  store: postgres\n"))
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, base + "verification:\n  batch_size: 0\n"))
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, "name: j\nversion: 1\nmarket_data:\n  providers: []\n"))


def test_build_services_from_config(tmp_path, monkeypatch):
    monkeypatch.setenv("POLYGON_API_KEY", "poly")
    monkeypatch.delenv("FINNHUB_API_KEY", raising=False)
    text = CONFIG_PATH.read_text(encoding="utf-8")
    text = text.replace("store: sqlite", "store: memory")
    text = text.replace("runtime/audit.jsonl", str(tmp_path / "audit.jsonl"))
    path = _write(tmp_path, text)
    config = load_config(path)
    context = create_run_context(path, config.run_id_prefix)

    services = build_services(config, context=context)

    assert isinstance(services.ledger.store, InMemoryLotStore)
    assert services.gateway.provider_names == ["polygon", "finnhub"]
    polygon, finnhub = services.gateway.providers
    assert isinstance(polygon, PolygonProvider) and polygon.api_key == "poly"
    assert polygon.rate_limiter.min_seconds_between_requests == 12
    assert isinstance(finnhub, FinnhubProvider) and finnhub.api_key is None
    assert services.verifier.batch_size == 5
    assert services.ingestor.duplicate_window.total_seconds() == 5
    assert context.run_id.startswith("journal-")

    services.ingestor.ingest_entry(
        {"owner": "u", "symbol": "AAPL", "side": "buy", "price": 1.0, "quantity": 1, "timestamp": 1717425000}
    )
    records = services.audit_log.read("lot_opened")
    assert records[0]["run_id"] == context.run_id
    assert records[0]["config_hash"] == context.config_hash


def test_build_store_and_gateway(tmp_path):
    config = load_config(CONFIG_PATH)
    store = build_store(replace(config.ledger, sqlite_path=str(tmp_path / "db" / "journal.db")))
    assert isinstance(store, SQLiteLotStore)
    store.close()

    disabled = replace(
        config.market_data,
        providers=[replace(config.market_data.providers[0], enabled=False), config.market_data.providers[1]],
    )
    assert build_gateway(disabled).provider_names == ["finnhub"]
