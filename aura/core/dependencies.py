"""
FastAPI dependencies for the long-lived service objects kept on app.state.

main.py builds them once at import; tests may swap them through
app.dependency_overrides.
"""
from fastapi import Request

from aura.services.cache import InvalidationBus
from aura.services.evaluation_worker import EvaluationWorker
from aura.services.providers import StaticSenseDataProvider
from aura.services.sensor_catalog import SensorCatalog


def get_bus(request: Request) -> InvalidationBus:
    return request.app.state.bus


def get_worker(request: Request) -> EvaluationWorker:
    return request.app.state.worker


def get_catalog(request: Request) -> SensorCatalog:
    return request.app.state.catalog


def get_sense_provider(request: Request) -> StaticSenseDataProvider:
    return request.app.state.sense_provider
