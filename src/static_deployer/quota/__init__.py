"""Quota and cooldown admission control."""

from .admission import AdmissionController, is_status_probe
from .store import CounterStore, InMemoryCounterStore, JsonFileCounterStore

__all__ = [
    "AdmissionController",
    "is_status_probe",
    "CounterStore",
    "InMemoryCounterStore",
    "JsonFileCounterStore",
]
