import asyncio

import pytest

from solholdings import registry as registry_mod
from solholdings.config import HoldingsConfig
from solholdings.registry import RegistryIndex, build_index, get_registry
from tests.helpers import BONK, JUP, RAY, WSOL, failing_registry, static_registry, token_list_payload


def test_build_index_merges_segments_last_wins():
    index = build_index(token_list_payload(), (101, 103))
    assert set(index) == {JUP, BONK, WSOL}
    assert index[BONK].symbol == "dBONK"
    assert index[BONK].chain_id == 103
    assert index[JUP].logo_uri == "https://static.jup.ag/jup/icon.png"
    assert index[WSOL].decimals == 9


def test_build_index_segment_order_matters():
    index = build_index(token_list_payload(), (103, 101))
    assert index[BONK].symbol == "Bonk"
    assert index[BONK].logo_uri is None


def test_build_index_skips_other_chains_and_bad_records():
    payload = token_list_payload()
    payload["tokens"].extend(
        [
            {"chainId": 101, "address": "bad", "symbol": "X", "name": "X", "decimals": 1},
            {"chainId": 101, "address": RAY, "symbol": "RAY", "name": "Raydium", "decimals": 300},
            "garbage",
        ]
    )
    index = build_index(payload, (101,))
    assert RAY not in index
    assert BONK in index and index[BONK].symbol == "Bonk"


def test_build_index_accepts_bare_list():
    index = build_index(token_list_payload()["tokens"], (101,))
    assert JUP in index


@pytest.mark.asyncio
async def test_concurrent_first_calls_share_one_fetch():
    calls = 0
    gate = asyncio.Event()

    async def fetcher():
        nonlocal calls
        calls += 1
        await gate.wait()
        return token_list_payload()

    reg = RegistryIndex("https://example.com/tokens.json", fetcher=fetcher)
    waiters = [asyncio.create_task(reg.get_index()) for _ in range(10)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert reg.fetch_count == 1
    assert all(r is results[0] for r in results)
    assert (await reg.lookup(JUP)).symbol == "JUP"
    assert calls == 1


@pytest.mark.asyncio
async def test_index_is_read_only():
    reg = static_registry()
    index = await reg.get_index()
    with pytest.raises(TypeError):
        index["x"] = None  # type: ignore[index]


@pytest.mark.asyncio
async def test_failure_is_soft_and_cached(caplog):
    reg = failing_registry()

    assert await reg.lookup(JUP) is None
    assert await reg.get_index() == {}
    assert reg.failed and reg.built
    assert reg.fetch_count == 1
    assert any("registry unavailable" in rec.getMessage().lower() for rec in caplog.records)


@pytest.mark.asyncio
async def test_malformed_payload_counts_as_failure():
    reg = static_registry(payload={"unexpected": True})
    assert await reg.get_index() == {}
    assert reg.failed


@pytest.mark.asyncio
async def test_retry_after_failure_when_configured():
    now = [100.0]
    attempts = []

    async def fetcher():
        attempts.append(now[0])
        if len(attempts) == 1:
            raise RuntimeError("offline")
        return token_list_payload()

    reg = RegistryIndex(
        "https://example.com/tokens.json",
        fetcher=fetcher,
        retry_failed_after=30,
        clock=lambda: now[0],
    )
    assert await reg.lookup(JUP) is None
    now[0] += 10
    assert await reg.lookup(JUP) is None
    assert len(attempts) == 1
    now[0] += 25
    assert (await reg.lookup(JUP)).name == "Jupiter"
    assert len(attempts) == 2
    assert not reg.failed


@pytest.mark.asyncio
async def test_reset_forces_refetch():
    reg = static_registry()
    await reg.get_index()
    reg.reset()
    assert not reg.built
    await reg.get_index()
    assert reg.fetch_count == 2


@pytest.mark.asyncio
async def test_default_fetch_maps_http_errors(monkeypatch):
    async def fake_fetch_json(url, *, session=None, timeout=None):
        raise registry_mod.HTTPError(f"GET {url} returned HTTP 503")

    monkeypatch.setattr(registry_mod, "fetch_json", fake_fetch_json)
    reg = RegistryIndex("https://example.com/tokens.json")
    with pytest.raises(registry_mod.RegistryUnavailable):
        await reg._fetch_remote()
    assert await reg.get_index() == {}


def test_get_registry_is_shared_and_uses_config():
    cfg = HoldingsConfig(token_list_url="https://example.com/list.json", registry_chain_ids=[101])
    reg = get_registry(cfg)
    assert reg is get_registry()
    assert reg.url == "https://example.com/list.json"
    assert reg.chain_ids == (101,)


def test_retry_build_works_from_a_new_event_loop():
    now = [0.0]
    attempts = []

    async def fetcher():
        attempts.append(now[0])
        await asyncio.sleep(0)
        if len(attempts) == 1:
            raise RuntimeError("offline")
        return token_list_payload()

    reg = RegistryIndex(
        "https://example.com/tokens.json",
        fetcher=fetcher,
        retry_failed_after=1,
        clock=lambda: now[0],
    )

    async def contended_lookup():
        results = await asyncio.gather(*(reg.lookup(JUP) for _ in range(3)))
        assert len({id(r) for r in results}) == 1
        return results[0]

    assert asyncio.run(contended_lookup()) is None
    now[0] += 5
    entry = asyncio.run(contended_lookup())

    assert entry is not None and entry.symbol == "JUP"
    assert len(attempts) == 2
