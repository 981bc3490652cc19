"""Polling client for the shiny hunt tracker.

Mirrors the overlay page: fetches the section toggles once, then polls every
enabled endpoint on its own interval and writes to the display only when a
value actually changed. :class:`OverlayView` is an in-memory model of the
page's display regions, so the client can run headless (or be tested) without
a browser.
"""

from __future__ import annotations

import argparse
import asyncio
import locale
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from schemas import Sections

logger = logging.getLogger(__name__)

COUNTER_INTERVAL = 1.0
IMAGE_INTERVAL = 5.0
LIVING_DEX_INTERVAL = 5.0

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")

SECTION_REGIONS = {
    "currentHunt": "current-hunt-section",
    "failedAttempts": "failed-attempts-section",
    "lastShiny": "last-shiny-section",
    "livingDex": "living-dex-section",
}


def parse_count(raw: Any) -> int:
    """Leading-integer parse; anything unparseable counts as 0."""
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    match = _LEADING_INT.match(str(raw)) if raw is not None else None
    return int(match.group(1)) if match else 0


def format_number(value: float) -> str:
    """Render a number with the current locale's thousands separators."""
    if isinstance(value, float) and not value.is_integer():
        # Up to three decimals with trailing zeros dropped, like toLocaleString().
        text = locale.format_string("%.3f", value, grouping=True)
        return text.rstrip("0").rstrip(locale.localeconv()["decimal_point"])
    return locale.format_string("%d", int(value), grouping=True)


@dataclass
class Region:
    """One display element of the overlay page."""

    text: str = ""
    src: Optional[str] = None
    visible: bool = True
    writes: int = 0


class OverlayView:
    """In-memory stand-in for the overlay page's DOM."""

    def __init__(self, on_write: Optional[Callable[[str, Region], None]] = None) -> None:
        self._on_write = on_write
        self.regions: Dict[str, Region] = {
            "counter-value": Region(text="0"),
            "failed-catches-value": Region(text="0"),
            "pokemon-image": Region(visible=False),
            "last-shiny-image": Region(visible=False),
            "living-dex-value": Region(text="0 / 0"),
        }
        for region_id in SECTION_REGIONS.values():
            self.regions[region_id] = Region()

    def __getitem__(self, region_id: str) -> Region:
        return self.regions[region_id]

    def _written(self, region_id: str) -> None:
        region = self.regions[region_id]
        region.writes += 1
        if self._on_write is not None:
            self._on_write(region_id, region)

    def set_text(self, region_id: str, text: str) -> None:
        self.regions[region_id].text = text
        self._written(region_id)

    def show_image(self, region_id: str, src: str) -> None:
        region = self.regions[region_id]
        region.src = src
        region.visible = True
        self._written(region_id)

    def hide_image(self, region_id: str, remove_src: bool = False) -> None:
        region = self.regions[region_id]
        if remove_src:
            region.src = None
        region.visible = False
        self._written(region_id)

    def apply_sections(self, sections: Sections) -> None:
        for key, region_id in SECTION_REGIONS.items():
            self.regions[region_id].visible = bool(getattr(sections, key))
            self._written(region_id)


_UNKNOWN = object()


class TrackedValue:
    """Last value seen for one endpoint; renders only on change."""

    def __init__(self, name: str, render: Callable[[Any], None]) -> None:
        self.name = name
        self._render = render
        self.value: Any = _UNKNOWN

    @property
    def known(self) -> bool:
        return self.value is not _UNKNOWN

    def update(self, new_value: Any) -> bool:
        if self.known and self.value == new_value:
            return False
        self.value = new_value
        self._render(new_value)
        return True


class PollingClient:
    """Polls the tracker endpoints and keeps an :class:`OverlayView` current.

    Each endpoint gets its own task; a failing endpoint only skips its own
    cycle and is retried on the next tick.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        view: Optional[OverlayView] = None,
        counter_interval: float = COUNTER_INTERVAL,
        image_interval: float = IMAGE_INTERVAL,
        living_dex_interval: float = LIVING_DEX_INTERVAL,
    ) -> None:
        self._http = http
        self.view = view or OverlayView()
        self.counter_interval = counter_interval
        self.image_interval = image_interval
        self.living_dex_interval = living_dex_interval
        self._tasks: List[asyncio.Task] = []
        self.sections: Optional[Sections] = None

        self.counter = TrackedValue(
            "counter",
            lambda v: self.view.set_text("counter-value", format_number(v)),
        )
        self.failed_catches = TrackedValue(
            "failed-catches",
            lambda v: self.view.set_text("failed-catches-value", format_number(v)),
        )
        self.pokemon_image = TrackedValue("pokemon", self._render_pokemon)
        self.last_shiny_image = TrackedValue("last-shiny", self._render_last_shiny)
        self.living_dex = TrackedValue(
            "living-dex",
            lambda v: self.view.set_text(
                "living-dex-value", f"{format_number(v[0])} / {format_number(v[1])}"
            ),
        )

    @property
    def tasks(self) -> List[asyncio.Task]:
        return list(self._tasks)

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def _render_pokemon(self, path: str) -> None:
        if path:
            self.view.show_image("pokemon-image", path)
        else:
            self.view.hide_image("pokemon-image")

    def _render_last_shiny(self, path: str) -> None:
        if path:
            self.view.show_image("last-shiny-image", path)
        else:
            # Dropping the source avoids a failed image load.
            self.view.hide_image("last-shiny-image", remove_src=True)

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    async def _get_json(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self._http.get(path)
        except httpx.HTTPError as exc:
            logger.error("Error fetching %s: %s", path, exc)
            return None
        if not response.is_success:
            logger.error(
                "Failed to fetch %s: %s %s",
                path,
                response.status_code,
                response.reason_phrase,
            )
            return None
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Invalid JSON from %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.error("Unexpected payload from %s: %r", path, data)
            return None
        return data

    async def fetch_counter(self) -> bool:
        data = await self._get_json("/counter")
        if data is None:
            return False
        return self.counter.update(parse_count(data.get("count")))

    async def fetch_failed_catches(self) -> bool:
        data = await self._get_json("/failed-catches")
        if data is None:
            return False
        return self.failed_catches.update(parse_count(data.get("count")))

    async def fetch_pokemon(self) -> bool:
        data = await self._get_json("/pokemon")
        if data is None:
            return False
        return self.pokemon_image.update(data.get("imagePath") or "")

    async def fetch_last_shiny(self) -> bool:
        data = await self._get_json("/last-shiny")
        if data is None:
            return False
        return self.last_shiny_image.update(data.get("imagePath") or "")

    async def fetch_living_dex(self) -> bool:
        data = await self._get_json("/living-dex")
        if data is None:
            return False
        count, total = data.get("count"), data.get("total")
        if not all(
            isinstance(v, (int, float)) and not isinstance(v, bool)
            for v in (count, total)
        ):
            logger.error("Unexpected living dex payload: %r", data)
            return False
        return self.living_dex.update((count, total))

    async def fetch_sections(self) -> Sections:
        """Section toggles from the server, or the defaults if unavailable."""
        data = await self._get_json("/config/sections")
        if data is None:
            logger.warning("Using default sections")
            return Sections()
        return Sections.overlay(data.get("sections"))

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def _pollers(
        self, sections: Sections
    ) -> List[Tuple[Callable[[], Awaitable[bool]], float]]:
        pollers: List[Tuple[Callable[[], Awaitable[bool]], float]] = []
        if sections.currentHunt:
            pollers.append((self.fetch_counter, self.counter_interval))
            pollers.append((self.fetch_pokemon, self.image_interval))
        if sections.failedAttempts:
            pollers.append((self.fetch_failed_catches, self.counter_interval))
        if sections.lastShiny:
            pollers.append((self.fetch_last_shiny, self.image_interval))
        if sections.livingDex:
            pollers.append((self.fetch_living_dex, self.living_dex_interval))
        return pollers

    async def _poll_forever(
        self, fetch: Callable[[], Awaitable[bool]], interval: float
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            await fetch()

    async def start(self) -> Sections:
        """Fetch sections, do one round of fetches, then start polling."""
        logger.info("Pokemon Shiny Hunt Tracker initialized")
        sections = await self.fetch_sections()
        self.sections = sections
        self.view.apply_sections(sections)

        pollers = self._pollers(sections)
        await asyncio.gather(*(fetch() for fetch, _ in pollers))

        await self.stop()
        self._tasks = [
            asyncio.create_task(self._poll_forever(fetch, interval))
            for fetch, interval in pollers
        ]
        return sections

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def run(base_url: str) -> None:
    def log_write(region_id: str, region: Region) -> None:
        if region.src is not None and region_id.endswith("-image"):
            logger.info("%s -> %s (visible=%s)", region_id, region.src, region.visible)
        elif region_id.endswith("-image") or region_id.endswith("-section"):
            logger.info("%s visible=%s", region_id, region.visible)
        else:
            logger.info("%s -> %s", region_id, region.text)

    async with httpx.AsyncClient(base_url=base_url) as http:
        client = PollingClient(http, OverlayView(on_write=log_write))
        await client.start()
        try:
            await asyncio.Event().wait()
        finally:
            await client.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Poll a shiny hunt tracker server.")
    parser.add_argument("url", nargs="?", default="http://shiny.local")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    locale.setlocale(locale.LC_ALL, "")
    try:
        asyncio.run(run(args.url))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
