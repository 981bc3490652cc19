"""FastAPI application exposing shiny hunt progress as JSON."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Iterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from starlette.staticfiles import StaticFiles

from config import STATIC_DIR, AppConfig, config
from schemas import (
    CountResponse,
    ImagePathResponse,
    LivingDexResponse,
    Sections,
    SectionsResponse,
)
from shinytracker.errors import (
    ConfigLoadError,
    SectionDisabledError,
    SourceInvalidError,
    SourceNotConfiguredError,
    SourceNotFoundError,
)
from store import ConfigStore, ConfigWatcher, TrackerFiles, reload_config

logger = logging.getLogger(__name__)


class StatusService:
    """Application layer façade around :class:`ConfigStore` and
    :class:`TrackerFiles`.

    Keeps the routes free from file handling and maps tracker errors onto
    HTTP status codes.
    """

    def __init__(self, store: ConfigStore, files: TrackerFiles) -> None:
        self._store = store
        self._files = files

    @contextmanager
    def _http_errors(self) -> Iterator[None]:
        try:
            yield
        except SectionDisabledError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SourceNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except (SourceNotConfiguredError, SourceInvalidError, ConfigLoadError) as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    def counter(self) -> CountResponse:
        with self._http_errors():
            cfg = self._store.snapshot()
            count = self._files.read_count(cfg.counterFilePath, "Counter file")
        return CountResponse(count=count)

    def failed_catches(self) -> CountResponse:
        with self._http_errors():
            cfg = self._store.snapshot()
            count = self._files.read_count(
                cfg.failedCatchesFilePath, "Failed catches file"
            )
        return CountResponse(count=count)

    def pokemon(self) -> ImagePathResponse:
        with self._http_errors():
            cfg = self._store.snapshot()
            image_path = self._files.image_path(cfg.pokemonImage, "Pokemon image")
        return ImagePathResponse(imagePath=image_path)

    def last_shiny(self) -> ImagePathResponse:
        with self._http_errors():
            cfg = self._store.snapshot()
            if not cfg.lastShinyImage:
                # No shiny caught yet.
                return ImagePathResponse(imagePath="")
            image_path = self._files.image_path(
                cfg.lastShinyImage, "Last shiny image"
            )
        return ImagePathResponse(imagePath=image_path)

    def living_dex(self) -> LivingDexResponse:
        with self._http_errors():
            cfg = self._store.snapshot()
            # Toggles come from the same snapshot as the paths.
            sections = Sections.overlay(cfg.sections)
            count, total = self._files.living_dex(cfg, sections)
        return LivingDexResponse(count=count, total=total)

    def sections(self) -> SectionsResponse:
        return SectionsResponse(sections=self._store.sections())


def get_status_service(request: Request) -> StatusService:
    """FastAPI dependency returning the app's status service."""
    return request.app.state.status_service


router = APIRouter()


@router.get("/counter", response_model=CountResponse)
def counter(service: StatusService = Depends(get_status_service)) -> CountResponse:
    """Current encounter count."""
    return service.counter()


@router.get("/failed-catches", response_model=CountResponse)
def failed_catches(
    service: StatusService = Depends(get_status_service),
) -> CountResponse:
    """Current failed catch count."""
    return service.failed_catches()


@router.get("/pokemon", response_model=ImagePathResponse)
def pokemon(service: StatusService = Depends(get_status_service)) -> ImagePathResponse:
    """Image of the Pokemon being hunted."""
    return service.pokemon()


@router.get("/last-shiny", response_model=ImagePathResponse)
def last_shiny(
    service: StatusService = Depends(get_status_service),
) -> ImagePathResponse:
    """Image of the last shiny caught; empty path when there is none."""
    return service.last_shiny()


@router.get("/living-dex", response_model=LivingDexResponse)
def living_dex(
    service: StatusService = Depends(get_status_service),
) -> LivingDexResponse:
    """Living dex progress as count and total."""
    return service.living_dex()


@router.get("/config/sections", response_model=SectionsResponse)
def config_sections(
    service: StatusService = Depends(get_status_service),
) -> SectionsResponse:
    """Effective section toggles for the overlay page."""
    return service.sections()


def create_app(
    store: ConfigStore,
    base_dir: Path,
    static_dir: Path = STATIC_DIR,
    app_config: AppConfig = config,
    watch: bool = True,
) -> FastAPI:
    """Build the application around an already loaded :class:`ConfigStore`."""

    watcher = ConfigWatcher(
        store.path,
        on_change=lambda: reload_config(store),
        debounce=app_config.reload_debounce_seconds,
        poll_interval=app_config.watch_poll_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if watch:
            watcher.start()
        try:
            yield
        finally:
            if watch:
                watcher.stop()

    app = FastAPI(title="Pokemon Shiny Hunt Tracker", lifespan=lifespan)
    app.state.status_service = StatusService(store, TrackerFiles(base_dir))
    app.state.config_watcher = watcher

    # Overlay tools load the page as a browser source from another origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(router)

    index_file = Path(static_dir) / "index.html"

    @app.get("/", include_in_schema=False)
    def index() -> FileResponse:
        return FileResponse(index_file)

    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    # Image paths are reported relative to the base directory.
    app.mount("/", StaticFiles(directory=base_dir), name="assets")

    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    store = ConfigStore(config.config_file_path)
    try:
        loaded = store.load()
    except ConfigLoadError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    app = create_app(store, config.base_dir)

    logger.info("Pokemon Shiny Hunt Tracker server running on %s", config.public_url)
    logger.info("Add this URL as a link source in TikTok Live Studio")
    logger.info("Counter file: %s", loaded.counterFilePath or "Not configured")
    logger.info("Pokemon image: %s", loaded.pokemonImage or "Not configured")

    import uvicorn

    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
