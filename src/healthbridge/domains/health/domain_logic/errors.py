"""Errors raised by the normalization and aggregation layer.

Failures coming from the native store boundary are not wrapped here; they
propagate unchanged to the caller.
"""

from __future__ import annotations


class HealthBridgeError(Exception):
    """Base exception for healthbridge domain errors."""


class UnknownDataTypeError(HealthBridgeError):
    """The generic data type is not present in the registry."""

    def __init__(self, data_type: str, message: str | None = None) -> None:
        self.data_type = data_type
        super().__init__(message or f"unknown data type - {data_type}")


class UnrecognizedBucketError(HealthBridgeError, ValueError):
    """Bucket width is not one of hour, day, week, month, year."""

    def __init__(self, bucket: str) -> None:
        self.bucket = bucket
        super().__init__(f"Bucket not recognised {bucket!r}")


class InvalidQueryError(HealthBridgeError, ValueError):
    """Query options are inconsistent (e.g. start date after end date)."""


class NotWritableError(HealthBridgeError):
    """Attempted to store a read-only generic data type."""

    def __init__(self, data_type: str) -> None:
        self.data_type = data_type
        super().__init__(f"{data_type} is not writeable")


class NotDeletableError(HealthBridgeError):
    """Attempted to delete a read-only generic data type."""

    def __init__(self, data_type: str) -> None:
        self.data_type = data_type
        super().__init__(f"{data_type} is not deletable")


class UnsupportedAggregationError(HealthBridgeError):
    """Aggregation requested for a type without an aggregation rule."""

    def __init__(self, data_type: str) -> None:
        self.data_type = data_type
        super().__init__(f"Datatype {data_type} not supported in queryAggregated")


class InvalidRecordError(HealthBridgeError, ValueError):
    """A store record's value does not have the shape its data type needs."""

    def __init__(self, data_type: str, expected: str) -> None:
        self.data_type = data_type
        self.expected = expected
        super().__init__(f"Invalid value for {data_type}: expected {expected}")
