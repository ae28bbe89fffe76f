# src/statpulse/repositories/__init__.py
from .health_log_repository import HealthLogStore, InMemoryHealthLog, JsonFileHealthLog

__all__ = [
    "HealthLogStore",
    "InMemoryHealthLog",
    "JsonFileHealthLog",
]
