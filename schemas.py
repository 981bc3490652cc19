# schemas.py

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class Sections(BaseModel):
    currentHunt: bool = True
    failedAttempts: bool = False
    lastShiny: bool = True
    livingDex: bool = False

    @classmethod
    def overlay(cls, configured: Any) -> "Sections":
        """Apply configured toggles on top of the defaults.

        Only real booleans override a default; anything else is ignored.
        """
        values = cls().model_dump()
        if isinstance(configured, dict):
            for key in values:
                candidate = configured.get(key)
                if isinstance(candidate, bool):
                    values[key] = candidate
        return cls(**values)


class TrackerConfig(BaseModel):
    """Contents of ``config.json``."""

    model_config = ConfigDict(extra="ignore")

    # Values are validated per request so one bad entry only breaks the
    # endpoint that uses it.
    counterFilePath: Any = None
    pokemonImage: Any = None
    failedCatchesFilePath: Any = None
    lastShinyImage: Any = None
    livingDexCount: Any = None
    livingDexTotal: Any = None
    sections: Any = None


class CountResponse(BaseModel):
    count: str = Field(..., description="Trimmed counter file contents")


class ImagePathResponse(BaseModel):
    imagePath: str = Field(..., description="Image path relative to the base directory")


class LivingDexResponse(BaseModel):
    count: int = Field(..., ge=0)
    total: Union[int, float]


class SectionsResponse(BaseModel):
    sections: Sections
