"""
Schemas Package
===============

Pydantic models for the greenhouse API wire format.
"""

from greensync.schemas.entities import (
    ANONYMOUS_TABLES,
    CATALOG_TABLES,
    ENTITY_TYPES,
    MERGEABLE_TABLES,
    PUSH_TABLES,
    CatalogEntity,
    CropCycle,
    CropType,
    Device,
    EditableEntity,
    Location,
    Parameter,
    Person,
    Placement,
    Relay,
    RelayType,
    Sensor,
    SensorType,
    Subsystem,
    SyncEntity,
    decode_table,
    encode_entities,
)
from greensync.schemas.history import (
    HISTORY_TABLE,
    HistoryBlockPayload,
    SamplePayload,
    decode_history_page,
    encode_history_blocks,
)

__all__ = [
    "ANONYMOUS_TABLES",
    "CATALOG_TABLES",
    "ENTITY_TYPES",
    "HISTORY_TABLE",
    "MERGEABLE_TABLES",
    "PUSH_TABLES",
    "CatalogEntity",
    "CropCycle",
    "CropType",
    "Device",
    "EditableEntity",
    "HistoryBlockPayload",
    "Location",
    "Parameter",
    "Person",
    "Placement",
    "Relay",
    "RelayType",
    "SamplePayload",
    "Sensor",
    "SensorType",
    "Subsystem",
    "SyncEntity",
    "decode_history_page",
    "decode_table",
    "encode_entities",
    "encode_history_blocks",
]
