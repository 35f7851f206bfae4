"""
Reference Table Schemas
=======================

Pydantic models for the reference/configuration tables exchanged with the
greenhouse API. The same models are stored locally as JSON documents.

Every model declares, at class level:

- ``table_name``: the API/store table it belongs to.
- ``identity_kind``: how a remote row is matched against its local
  counterpart (numeric id, GUID id or unique name).
- ``push_field``: the timestamp that marks a local row as changed since the
  last successful push, or ``None`` for catalog tables that are never pushed.

Catalog tables are read-only locally and carry no ``UpdatedAt``; the server
copy always wins. Editable tables carry ``UpdatedAt`` and are merged
last-writer-wins.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, ClassVar, Optional, Sequence
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from greensync.domain.exceptions import DecodeError
from greensync.enums.sync import IdentityKind
from greensync.utils.time import ensure_utc

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


def wire_alias(name: str) -> str:
    """``sensor_type_id`` -> ``SensorTypeID``; the API uses PascalCase with ``ID`` suffixes."""
    return "".join("ID" if part == "id" else part.capitalize() for part in name.split("_"))


class SyncEntity(BaseModel):
    """Base for every synchronised reference row."""

    model_config = ConfigDict(alias_generator=wire_alias, populate_by_name=True, extra="ignore")

    table_name: ClassVar[str]
    identity_kind: ClassVar[IdentityKind]
    push_field: ClassVar[Optional[str]] = None

    def identity_key(self) -> str:
        if self.identity_kind is IdentityKind.NAME:
            return str(getattr(self, "name"))
        return str(getattr(self, "id"))

    def timestamp_of(self, field_name: str) -> datetime | None:
        return getattr(self, field_name, None)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CatalogEntity(SyncEntity):
    """Read-only hardware catalog row; the server is the sole authority."""

    identity_kind: ClassVar[IdentityKind] = IdentityKind.NUMERIC

    id: int
    created_at: Optional[UtcDatetime] = None


class EditableEntity(SyncEntity):
    """User-editable row merged last-writer-wins on ``UpdatedAt``."""

    push_field: ClassVar[Optional[str]] = "updated_at"

    created_at: UtcDatetime
    updated_at: UtcDatetime


# ============================================================================
# Catalog (no auth)
# ============================================================================


class Parameter(CatalogEntity):
    table_name: ClassVar[str] = "Parameters"

    name: str
    unit: Optional[str] = None


class Placement(CatalogEntity):
    table_name: ClassVar[str] = "Placements"

    name: str


class Subsystem(CatalogEntity):
    table_name: ClassVar[str] = "Subsystems"

    name: str


class RelayType(CatalogEntity):
    table_name: ClassVar[str] = "RelayTypes"

    name: str
    subsystem_id: Optional[int] = None


class SensorType(CatalogEntity):
    table_name: ClassVar[str] = "SensorTypes"

    parameter_id: int
    placement_id: int
    subsystem_id: Optional[int] = None


# ============================================================================
# Editable
# ============================================================================


class Person(EditableEntity):
    table_name: ClassVar[str] = "People"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.NUMERIC

    id: int
    name: str
    deleted: bool = False


class CropType(SyncEntity):
    """Crop types are matched by their unique name and never edited once created."""

    table_name: ClassVar[str] = "CropTypes"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.NAME
    push_field: ClassVar[Optional[str]] = "created_at"

    name: str
    id: Optional[int] = None
    variety: Optional[str] = None
    approved: bool = False
    created_by: Optional[int] = None
    created_at: UtcDatetime


class Location(EditableEntity):
    table_name: ClassVar[str] = "Locations"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.GUID

    id: UUID
    name: str
    person_id: Optional[int] = None
    deleted: bool = False


class CropCycle(EditableEntity):
    table_name: ClassVar[str] = "CropCycles"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.GUID

    id: UUID
    name: str
    crop_type_name: str
    location_id: UUID
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    yield_kg: float = Field(default=0.0, alias="Yield")
    deleted: bool = False


class Device(EditableEntity):
    table_name: ClassVar[str] = "Devices"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.GUID

    id: UUID
    name: str
    serial_number: Optional[UUID] = None
    location_id: Optional[UUID] = None
    deleted: bool = False


class Relay(EditableEntity):
    table_name: ClassVar[str] = "Relays"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.GUID

    id: UUID
    device_id: UUID
    relay_type_id: int
    name: Optional[str] = None
    enabled: bool = True
    deleted: bool = False


class Sensor(EditableEntity):
    table_name: ClassVar[str] = "Sensors"
    identity_kind: ClassVar[IdentityKind] = IdentityKind.GUID

    id: UUID
    device_id: UUID
    sensor_type_id: int
    enabled: bool = True
    alarmed: bool = False
    alert_high: Optional[float] = None
    alert_low: Optional[float] = None
    deleted: bool = False


# Pull order encodes foreign-key dependencies: catalog first, then user tables
# in the order they reference each other.
CATALOG_TABLES: tuple[type[SyncEntity], ...] = (Parameter, Placement, Subsystem, RelayType, SensorType)
MERGEABLE_TABLES: tuple[type[SyncEntity], ...] = (Person, CropType, Location, CropCycle, Device, Relay, Sensor)
PUSH_TABLES: tuple[type[SyncEntity], ...] = (Location, CropType, CropCycle, Device, Sensor, Relay)

# Tables readable without credentials.
ANONYMOUS_TABLES: frozenset[str] = frozenset(
    model.table_name for model in CATALOG_TABLES + (CropType,)
)

ENTITY_TYPES: dict[str, type[SyncEntity]] = {
    model.table_name: model for model in CATALOG_TABLES + MERGEABLE_TABLES
}


def decode_table(model: type[SyncEntity], raw: str | bytes) -> list[SyncEntity]:
    """Decode a JSON array of ``model`` rows, raising :class:`DecodeError` on a shape mismatch."""
    try:
        return TypeAdapter(list[model]).validate_json(raw)
    except ValidationError as exc:
        raise DecodeError(model.table_name, str(exc)) from exc


def encode_entities(entities: Sequence[SyncEntity]) -> str:
    return json.dumps([entity.to_wire() for entity in entities], separators=(",", ":"))
