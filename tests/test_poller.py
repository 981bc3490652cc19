from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Dict, List

import httpx

from app import create_app
from poller import OverlayView, PollingClient, format_number, parse_count
from schemas import Sections
from store import ConfigStore


def mock_client(routes: Dict[str, Callable[[], httpx.Response]], seen: List[str]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return routes[request.url.path]()

    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://shiny.local"
    )


def json_response(payload, status_code: int = 200) -> Callable[[], httpx.Response]:
    return lambda: httpx.Response(status_code, json=payload)


def test_parse_count_matches_leading_integer() -> None:
    assert parse_count("42") == 42
    assert parse_count(" 17 apples") == 17
    assert parse_count("abc") == 0
    assert parse_count("") == 0
    assert parse_count(None) == 0


def test_format_number_drops_trailing_zeros() -> None:
    # Matches the browser's toLocaleString() under the default C locale.
    assert format_number(3.5) == "3.5"
    assert format_number(2.125) == "2.125"
    assert format_number(151.0) == "151"


def test_same_value_twice_writes_display_once() -> None:
    async def scenario() -> PollingClient:
        seen: List[str] = []
        async with mock_client({"/counter": json_response({"count": "42"})}, seen) as http:
            client = PollingClient(http)
            assert await client.fetch_counter() is True
            assert await client.fetch_counter() is False
            return client

    client = asyncio.run(scenario())
    region = client.view["counter-value"]
    assert region.writes == 1
    assert region.text == format_number(42)


def test_changed_value_writes_again() -> None:
    counts = iter(["1", "1", "2"])

    async def scenario() -> PollingClient:
        routes = {"/counter": lambda: httpx.Response(200, json={"count": next(counts)})}
        async with mock_client(routes, []) as http:
            client = PollingClient(http)
            for _ in range(3):
                await client.fetch_counter()
            return client

    client = asyncio.run(scenario())
    assert client.view["counter-value"].writes == 2
    assert client.counter.value == 2


def test_non_numeric_counter_shows_zero() -> None:
    async def scenario() -> PollingClient:
        routes = {"/failed-catches": json_response({"count": "n/a"})}
        async with mock_client(routes, []) as http:
            client = PollingClient(http)
            await client.fetch_failed_catches()
            return client

    client = asyncio.run(scenario())
    assert client.failed_catches.value == 0
    assert client.view["failed-catches-value"].text == format_number(0)


def test_failed_fetch_keeps_previous_value() -> None:
    responses = iter(
        [
            httpx.Response(200, json={"count": "42"}),
            httpx.Response(500, json={"detail": "Failed to read counter file"}),
            httpx.Response(200, text="not json"),
        ]
    )

    async def scenario() -> PollingClient:
        async with mock_client({"/counter": lambda: next(responses)}, []) as http:
            client = PollingClient(http)
            assert await client.fetch_counter() is True
            assert await client.fetch_counter() is False
            assert await client.fetch_counter() is False
            return client

    client = asyncio.run(scenario())
    assert client.counter.value == 42
    assert client.view["counter-value"].writes == 1


def test_network_error_is_a_no_op() -> None:
    def broken() -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    async def scenario() -> bool:
        async with mock_client({"/pokemon": broken}, []) as http:
            client = PollingClient(http)
            return await client.fetch_pokemon()

    assert asyncio.run(scenario()) is False


def test_image_regions() -> None:
    async def scenario() -> PollingClient:
        routes = {
            "/pokemon": json_response({"imagePath": ""}),
            "/last-shiny": json_response({"imagePath": ""}),
        }
        async with mock_client(routes, []) as http:
            client = PollingClient(http)
            await client.fetch_pokemon()
            await client.fetch_last_shiny()
            return client

    client = asyncio.run(scenario())
    assert client.view["pokemon-image"].visible is False
    last_shiny = client.view["last-shiny-image"]
    assert last_shiny.visible is False
    assert last_shiny.src is None

    view = OverlayView()
    view.show_image("last-shiny-image", "img/a.png")
    view.hide_image("last-shiny-image", remove_src=True)
    assert view["last-shiny-image"].src is None


def test_start_falls_back_to_default_sections() -> None:
    seen: List[str] = []

    async def scenario() -> PollingClient:
        routes = {
            "/config/sections": json_response({"detail": "boom"}, status_code=500),
            "/counter": json_response({"count": "5"}),
            "/pokemon": json_response({"imagePath": "img/mon.png"}),
            "/last-shiny": json_response({"imagePath": ""}),
        }
        async with mock_client(routes, seen) as http:
            client = PollingClient(http)
            sections = await client.start()
            assert sections == Sections()
            assert len(client.tasks) == 3
            await client.stop()
            return client

    client = asyncio.run(scenario())
    assert seen[0] == "/config/sections"
    assert "/failed-catches" not in seen
    assert "/living-dex" not in seen
    assert client.view["failed-attempts-section"].visible is False
    assert client.view["current-hunt-section"].visible is True
    assert client.view["pokemon-image"].src == "img/mon.png"


def test_start_only_polls_enabled_sections() -> None:
    seen: List[str] = []

    async def scenario() -> PollingClient:
        routes = {
            "/config/sections": json_response(
                {
                    "sections": {
                        "currentHunt": False,
                        "failedAttempts": True,
                        "lastShiny": False,
                        "livingDex": True,
                    }
                }
            ),
            "/failed-catches": json_response({"count": "3"}),
            "/living-dex": json_response({"count": 37, "total": 150}),
        }
        async with mock_client(routes, seen) as http:
            client = PollingClient(http)
            await client.start()
            await client.stop()
            return client

    client = asyncio.run(scenario())
    assert sorted(seen[1:]) == ["/failed-catches", "/living-dex"]
    assert client.view["living-dex-value"].text == f"{format_number(37)} / {format_number(150)}"


def test_restart_replaces_poll_tasks() -> None:
    async def scenario() -> None:
        routes = {
            "/config/sections": json_response({"sections": {}}),
            "/counter": json_response({"count": "1"}),
            "/pokemon": json_response({"imagePath": ""}),
            "/last-shiny": json_response({"imagePath": ""}),
        }
        async with mock_client(routes, []) as http:
            client = PollingClient(http)
            await client.start()
            first = client.tasks
            await client.start()
            await asyncio.sleep(0)
            assert all(task.cancelled() for task in first)
            assert len(client.tasks) == len(first)
            await client.stop()
            assert client.tasks == []

    asyncio.run(scenario())


def test_poll_tasks_pick_up_new_values() -> None:
    current = {"count": "1"}

    async def scenario() -> PollingClient:
        routes = {
            "/config/sections": json_response(
                {"sections": {"currentHunt": True, "lastShiny": False}}
            ),
            "/counter": lambda: httpx.Response(200, json=dict(current)),
            "/pokemon": json_response({"imagePath": ""}),
        }
        async with mock_client(routes, []) as http:
            client = PollingClient(http, counter_interval=0.01, image_interval=0.01)
            await client.start()
            current["count"] = "2"
            for _ in range(100):
                if client.counter.value == 2:
                    break
                await asyncio.sleep(0.01)
            await client.stop()
            return client

    client = asyncio.run(scenario())
    assert client.counter.value == 2
    assert client.view["counter-value"].writes == 2


def test_against_real_app(tmp_path: Path) -> None:
    (tmp_path / "shiny.txt").write_text("1234\n", encoding="utf-8")
    (tmp_path / "mon.png").write_bytes(b"png")
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"counterFilePath": "shiny.txt", "pokemonImage": "mon.png"}),
        encoding="utf-8",
    )
    store = ConfigStore(config_path)
    store.load()
    application = create_app(store, tmp_path, watch=False)

    async def scenario() -> PollingClient:
        transport = httpx.ASGITransport(app=application)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://shiny.local"
        ) as http:
            client = PollingClient(http)
            await client.start()
            await client.stop()
            return client

    client = asyncio.run(scenario())
    assert client.counter.value == 1234
    assert client.view["counter-value"].text == format_number(1234)
    assert client.view["pokemon-image"].src == "mon.png"
    # No last shiny configured yet.
    assert client.last_shiny_image.value == ""
    assert client.view["last-shiny-image"].visible is False
