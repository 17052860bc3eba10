import asyncio
import json

import pytest
from aiohttp import web
from aiohttp import test_utils

from conftest import north
from storage.run_store import RunStore, RunStoreError, load_ghost, normalize_run
from tracking.model import GhostResult, RunSummary


def make_summary(timestamp=1_700_000_000_000):
    return RunSummary(
        points=[north(0, timestamp), north(100, timestamp + 10_000)],
        distance=100.0,
        duration=10,
        timestamp=timestamp,
        ghost_meta={"type": "boss"},
        ghost_result=GhostResult(won=True, delta=12.5),
    )


async def with_server(handler, body):
    app = web.Application()
    app.router.add_post("/runs", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        return await body(str(server.make_url("/runs")))
    finally:
        await server.close()


def test_save_local_only(tmp_path):
    store = RunStore(str(tmp_path / "runs"))
    result = asyncio.run(store.save(make_summary()))

    assert result.source == "local"
    assert result.id == result.local_id == "run-1700000000000"
    data = json.loads((tmp_path / "runs" / "run-1700000000000.json").read_text())
    assert data["distance"] == 100.0
    assert data["ghostResult"] == {"won": True, "delta": 12.5}
    assert len(data["points"]) == 2


def test_save_never_overwrites(tmp_path):
    store = RunStore(str(tmp_path))

    async def scenario():
        first = await store.save(make_summary())
        second = await store.save(make_summary())
        return first, second

    first, second = asyncio.run(scenario())
    assert first.local_id != second.local_id
    assert len(store.list_runs()) == 2


def test_save_remote_success(tmp_path):
    seen = {}

    async def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = await request.json()
        return web.json_response({"id": "remote-42"}, status=201)

    async def body(url):
        store = RunStore(str(tmp_path), remote_url=url, api_key="secret")
        return await store.save(make_summary())

    result = asyncio.run(with_server(handler, body))
    assert result.source == "remote"
    assert result.id == "remote-42"
    assert (tmp_path / f"{result.local_id}.json").exists()
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["ghostMeta"] == {"type": "boss"}


def test_remote_error_falls_back_to_local(tmp_path):
    async def handler(request):
        return web.Response(status=500, text="boom")

    async def body(url):
        return await RunStore(str(tmp_path), remote_url=url).save(make_summary())

    result = asyncio.run(with_server(handler, body))
    assert result.source == "local"
    assert result.id == result.local_id


def test_remote_timeout_falls_back_to_local(tmp_path):
    async def handler(request):
        await asyncio.sleep(1.0)
        return web.json_response({"id": "late"})

    async def body(url):
        return await RunStore(str(tmp_path), remote_url=url, timeout_s=0.1).save(make_summary())

    assert asyncio.run(with_server(handler, body)).source == "local"


def test_remote_without_id_falls_back_to_local(tmp_path):
    async def handler(request):
        return web.json_response({"ok": True})

    async def body(url):
        return await RunStore(str(tmp_path), remote_url=url).save(make_summary())

    assert asyncio.run(with_server(handler, body)).source == "local"


def test_local_write_failure_raises(tmp_path):
    blocker = tmp_path / "runs"
    blocker.write_text("not a directory")
    store = RunStore(str(blocker))

    with pytest.raises(RunStoreError):
        asyncio.run(store.save(make_summary()))


# ===== ghost normalisation =====

def test_normalize_run_rebases_timestamps():
    data = make_summary().to_dict()
    route, meta = normalize_run(data)

    assert [p.timestamp for p in route] == [0, 10_000]
    assert meta["distance"] == 100.0
    assert meta["duration"] == 10
    # ghostMeta of a saved run describes its opponent, not the run
    assert meta["type"] == "run"


def test_normalize_run_accepts_loose_shapes():
    data = {
        "id": "abc",
        "distanceKm": 1.5,
        "route": [
            {"lat": 1.0, "lng": 2.0, "time": 5000},
            {"lat": 1.001, "lng": 2.0, "time": 8000},
            {"nonsense": True},
        ],
    }
    route, meta = normalize_run(data)
    assert len(route) == 2
    assert route[0].latitude == 1.0 and route[0].longitude == 2.0
    assert route[1].timestamp == 3000
    assert meta["distance"] == pytest.approx(1500.0)
    assert meta["duration"] == 3
    assert meta["id"] == "abc"


def test_normalize_run_measures_missing_distance():
    data = {"points": [north(0, 0).to_dict(), north(80, 4000).to_dict()]}
    _, meta = normalize_run(data)
    assert meta["distance"] == pytest.approx(80.0)


def test_normalize_run_without_points():
    with pytest.raises(ValueError):
        normalize_run({"points": []})


def test_load_ghost_reads_saved_run(tmp_path):
    store = RunStore(str(tmp_path))
    saved = asyncio.run(store.save(make_summary()))

    route, meta = load_ghost(str(tmp_path / f"{saved.local_id}.json"))
    assert route[0].timestamp == 0
    assert route[-1].timestamp == 10_000
    assert meta["id"] == saved.local_id


def test_load_ghost_rejects_non_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2, 3]")
    with pytest.raises(ValueError):
        load_ghost(str(path))
