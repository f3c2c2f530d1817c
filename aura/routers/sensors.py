"""
Sensor router.

GET  /sensors              - the sensor metadata catalog
GET  /sensors/{sensor_id}  - one sensor
POST /sensors/readings     - push current readings for the evaluation cycle
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from aura.core.dependencies import get_catalog, get_sense_provider
from aura.core.errors import SensorNotFoundError
from aura.schemas.sensor import (
    EnumValueOut,
    SenseReadingsRequest,
    SenseReadingsResponse,
    SensorListResponse,
    SensorOut,
)
from aura.services.providers import StaticSenseDataProvider
from aura.services.sensor_catalog import SENSOR_CONFIGS, SensorCatalog, SensorMetadata

router = APIRouter(prefix="/sensors", tags=["sensors"])


def sensor_to_response(meta: SensorMetadata) -> SensorOut:
    return SensorOut(
        id=meta.id,
        name=meta.name,
        type=meta.type.value,
        unit=meta.unit,
        range={"min": meta.range[0], "max": meta.range[1]} if meta.range else None,
        enum_values=[EnumValueOut(value=e.value, label=e.label) for e in meta.enum_values],
        category=meta.category,
        operators=list(meta.allowed_operators),
    )


@router.get("", response_model=SensorListResponse, summary="List the sensor catalog")
def list_sensors(catalog: SensorCatalog = Depends(get_catalog)):
    sensors = catalog.all() if hasattr(catalog, "all") else SENSOR_CONFIGS
    return SensorListResponse(
        total=len(sensors),
        items=[sensor_to_response(s) for s in sensors],
    )


@router.post(
    "/readings",
    response_model=SenseReadingsResponse,
    summary="Store the latest readings used by the evaluation cycle",
)
def push_readings(
    payload: SenseReadingsRequest,
    provider: StaticSenseDataProvider = Depends(get_sense_provider),
):
    for reading in payload.readings:
        provider.update(reading.sense_id, reading.data)
    return SenseReadingsResponse(updated=[r.sense_id for r in payload.readings])


@router.get("/{sensor_id}", response_model=SensorOut, summary="Get one sensor")
def get_sensor(sensor_id: str, catalog: SensorCatalog = Depends(get_catalog)):
    meta = catalog.get_sensor_config(sensor_id)
    if meta is None:
        raise SensorNotFoundError(sensor_id)
    return sensor_to_response(meta)
