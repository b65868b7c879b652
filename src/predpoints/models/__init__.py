"""Canonical schema (Pydantic) - domain events, ledger entries, user aggregates."""

from predpoints.models.events import DomainEvent, EventKind
from predpoints.models.ledger import LedgerEntry, PointsAward, PointsSource, UserAggregate

__all__ = [
    "DomainEvent",
    "EventKind",
    "LedgerEntry",
    "PointsAward",
    "PointsSource",
    "UserAggregate",
]
