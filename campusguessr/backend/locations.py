"""Location and map pack loading with random per-pack selection."""

from __future__ import annotations

import json
import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from campusguessr.backend.errors import DataLoadError, EmptyPackError
from campusguessr.backend.models import Location, MapPack

logger = logging.getLogger(__name__)


class LocationRecord(BaseModel):
    """One dataset location. Older datasets used ``x``/``y``/``z``."""

    model_config = ConfigDict(populate_by_name=True)

    location_id: int = Field(validation_alias=AliasChoices("ID", "id"))
    name: str = Field(validation_alias=AliasChoices("Name", "name"))
    image_ref: str = Field(default="", validation_alias=AliasChoices("FileName", "imageRef", "fileName"))
    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat", "x"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "lng", "y"))
    z_level: int = Field(default=0, validation_alias=AliasChoices("zLevel", "z"))

    @field_validator("z_level", mode="before")
    @classmethod
    def _round_z_level(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, float):
            return round(value)
        return value


class MapPackRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pack_id: int = Field(validation_alias=AliasChoices("ID", "id"))
    name: str = Field(validation_alias=AliasChoices("Name", "name"))
    location_ids: list[int] = Field(default_factory=list, validation_alias=AliasChoices("locationIDs", "locationIds"))


class DatasetDocument(BaseModel):
    locations: list[LocationRecord] = Field(validation_alias=AliasChoices("Locations", "locations"))
    map_packs: list[MapPackRecord] = Field(validation_alias=AliasChoices("MapPacks", "mapPacks"))


def _read_dataset(dataset: str | Path | Mapping[str, Any] | None) -> Mapping[str, Any]:
    if dataset is None:
        raise DataLoadError("No location dataset was provided")
    if isinstance(dataset, Mapping):
        return dataset

    text: str
    if isinstance(dataset, Path) or not str(dataset).lstrip().startswith("{"):
        path = Path(dataset)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, ValueError) as exc:
            raise DataLoadError(f"Location dataset not readable at {path}: {exc}") from exc
    else:
        text = str(dataset)

    if not text.strip():
        raise DataLoadError("Location dataset is empty")
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DataLoadError(f"Location dataset is not valid JSON: {exc}") from exc
    if not isinstance(decoded, Mapping):
        raise DataLoadError("Location dataset must be a JSON object")
    return decoded


@dataclass
class LocationStore:
    locations: dict[int, Location]
    packs: dict[int, MapPack]
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        self._pack_locations: dict[int, list[Location]] = {}
        for pack in self.packs.values():
            if pack.is_all:
                self._pack_locations[pack.pack_id] = list(self.locations.values())
            else:
                self._pack_locations[pack.pack_id] = self._pack_members(pack)

    def _pack_members(self, pack: MapPack) -> list[Location]:
        members = [self.locations[location_id] for location_id in pack.location_ids if location_id in self.locations]
        if len(members) != len(pack.location_ids):
            unknown = sorted(set(pack.location_ids) - set(self.locations))
            logger.warning(f"Map pack '{pack.name}' (ID: {pack.pack_id}) references unknown locations {unknown}")
        return members

    @classmethod
    def load(
        cls,
        dataset: str | Path | Mapping[str, Any] | None,
        rng: random.Random | None = None,
    ) -> "LocationStore":
        """Parse a dataset and build the id and pack indexes.

        ``dataset`` may be a file path, a JSON document string or an already
        decoded mapping. Any problem is reported as :class:`DataLoadError`.
        """
        raw = _read_dataset(dataset)
        try:
            document = DatasetDocument.model_validate(raw)
        except ValidationError as exc:
            raise DataLoadError(f"Location dataset is malformed: {exc}") from exc

        locations: dict[int, Location] = {}
        for record in document.locations:
            if record.location_id in locations:
                raise DataLoadError(f"Duplicate location id {record.location_id}")
            locations[record.location_id] = Location(
                location_id=record.location_id,
                name=record.name,
                latitude=record.latitude,
                longitude=record.longitude,
                z_level=record.z_level,
                image_ref=record.image_ref,
            )

        packs: dict[int, MapPack] = {}
        for record in document.map_packs:
            if record.pack_id in packs:
                raise DataLoadError(f"Duplicate map pack id {record.pack_id}")
            known_ids = tuple(location_id for location_id in record.location_ids if location_id in locations)
            if len(known_ids) != len(record.location_ids):
                unknown = sorted(set(record.location_ids) - set(known_ids))
                logger.warning(f"Map pack '{record.name}' (ID: {record.pack_id}) references unknown locations {unknown}")
            packs[record.pack_id] = MapPack(pack_id=record.pack_id, name=record.name, location_ids=known_ids)

        logger.info(f"Loaded {len(locations)} locations and {len(packs)} map packs")
        return cls(locations=locations, packs=packs, rng=rng if rng is not None else random.Random())

    @classmethod
    def from_path(cls, path: str | Path, rng: random.Random | None = None) -> "LocationStore":
        return cls.load(Path(path), rng=rng)

    def get(self, location_id: int) -> Location | None:
        return self.locations.get(location_id)

    def resolve_pack(self, pack_id: int) -> MapPack | None:
        return self.packs.get(pack_id)

    def candidates(self, pack_id: int) -> list[Location]:
        """Locations a round may draw from, falling back to every location."""
        pack = self.resolve_pack(pack_id)
        if pack is None:
            logger.warning(
                f"Map pack with ID {pack_id} not found, using all locations. Available IDs: {sorted(self.packs)}"
            )
            return list(self.locations.values())
        if pack.is_all:
            return list(self.locations.values())
        return list(self._pack_locations.get(pack.pack_id, []))

    def select_random(self, pack_id: int) -> Location:
        candidates = self.candidates(pack_id)
        if not candidates:
            raise EmptyPackError(f"Map pack {pack_id} has no locations to select from")
        selected = self.rng.choice(candidates)
        logger.debug(
            f"Selected location {selected.location_id} '{selected.name}' "
            f"(lat={selected.latitude}, lng={selected.longitude}, zLevel={selected.z_level})"
        )
        return selected

    def pack_names(self) -> list[str]:
        return [pack.name for pack in self.packs.values()]

    def pack_id_by_name(self, name: str) -> int | None:
        if not name:
            return None
        wanted = name.casefold()
        for pack in self.packs.values():
            if pack.name.casefold() == wanted:
                return pack.pack_id
        return None

    def is_valid_pack_name(self, name: str) -> bool:
        return self.pack_id_by_name(name) is not None
