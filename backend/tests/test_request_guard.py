import asyncio

import pytest

from medtrack.core.errors import StaleResponse
from medtrack.services.request_guard import RequestGuard


def test_only_the_latest_ticket_is_delivered():
    guard = RequestGuard()
    older = guard.begin(("sid", "doctors"))
    newer = guard.begin(("sid", "doctors"))

    with pytest.raises(StaleResponse) as excinfo:
        guard.finish(older, ["old"])
    assert excinfo.value.to_payload()["stale"] is True

    assert guard.finish(newer, ["new"]) == ["new"]
    assert len(guard) == 0


def test_scopes_are_independent():
    guard = RequestGuard()
    doctors = guard.begin(("sid", "doctors"))
    products = guard.begin(("sid", "products"))
    other_browser = guard.begin(("other", "doctors"))

    assert guard.finish(doctors, 1) == 1
    assert guard.finish(products, 2) == 2
    assert guard.finish(other_browser, 3) == 3


@pytest.mark.anyio
async def test_slow_superseded_search_is_dropped():
    guard = RequestGuard()
    release_slow = asyncio.Event()

    async def slow_search():
        await release_slow.wait()
        return ["Dr. K"]

    async def fast_search():
        return ["Dr. Kim Hale"]

    slow = asyncio.ensure_future(guard.run(("sid", "doctors"), slow_search()))
    await asyncio.sleep(0)
    fresh = await guard.run(("sid", "doctors"), fast_search())
    release_slow.set()

    assert fresh == ["Dr. Kim Hale"]
    with pytest.raises(StaleResponse):
        await slow


@pytest.mark.anyio
async def test_failed_request_releases_its_scope():
    guard = RequestGuard()

    async def boom():
        raise RuntimeError("backend down")

    with pytest.raises(RuntimeError):
        await guard.run(("sid", "orders"), boom())

    assert len(guard) == 0
