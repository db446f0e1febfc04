"""Core data models for merkledrop."""

from merkledrop.models.entitlement import Entitlement, Registration
from merkledrop.models.epoch import Contributor, Epoch, EpochStatus

__all__ = [
    "Contributor",
    "Entitlement",
    "Epoch",
    "EpochStatus",
    "Registration",
]
