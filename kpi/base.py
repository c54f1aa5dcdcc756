"""
kpi/base.py

Abstract base class for all KPI formula implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from app.domain.aggregates import Dimension
from app.domain.periods import BoundaryConvention, DateRange
from app.domain.records import RecordKind
from kpi.dimensions import ChannelType, Shift, channel_type_for, shift_for


class Unit(str, Enum):
    CURRENCY = "currency"
    COUNT = "count"
    RATE = "rate"
    NUMBER = "number"
    DURATION = "duration"


@dataclass(frozen=True)
class FormulaInputs:
    """
    Pre-fetched, pre-filtered records for one partition or bucket.
    """

    records: Mapping[RecordKind, Sequence[Any]]
    date_range: DateRange
    boundary: BoundaryConvention

    def of(self, kind: RecordKind) -> Sequence[Any]:
        return self.records.get(kind, ())

    @property
    def business_days(self) -> int:
        return self.date_range.business_days(self.boundary)


class BaseKPIFormula(ABC):
    """
    Contract for KPI formula implementations.

    Subclasses declare which record kinds they read, which dimensions they
    can be grouped by, and how their per-partition values are renamed on
    the roll-up row (``rollup_names``).  ``total_field`` names the roll-up
    value attached to every row as ``total_all_value``.

    No I/O, no logging, and no side effects are permitted inside
    :meth:`calculate`.
    """

    name: ClassVar[str]
    service_prefix: ClassVar[str]
    primary_source: ClassVar[RecordKind]
    sources: ClassVar[tuple[RecordKind, ...]]
    dimensions: ClassVar[frozenset[Dimension]] = frozenset({Dimension.DAY, Dimension.MONTH})
    rollup_names: ClassVar[Mapping[str, str]] = {}
    total_field: ClassVar[str]
    units: ClassVar[Mapping[str, Unit]] = {}

    @abstractmethod
    def calculate(self, inputs: FormulaInputs) -> dict[str, Decimal | int]:
        """
        Compute KPI values from *inputs* and return a result dictionary.

        Parameters
        ----------
        inputs:
            Records already filtered by range and tenant exclusion rules.

        Returns
        -------
        dict[str, Decimal | int]
            Computed values keyed by value name.  Empty inputs must yield
            zero values, never raise.
        """

    def rollup(self, values: Mapping[str, Decimal | int]) -> dict[str, Decimal | int]:
        return {self.rollup_names.get(key, key): value for key, value in values.items()}

    def unit_of(self, value_name: str) -> Unit:
        if value_name in self.units:
            return self.units[value_name]
        for source_name, rolled_name in self.rollup_names.items():
            if rolled_name == value_name:
                return self.units.get(source_name, Unit.NUMBER)
        return Unit.NUMBER

    def dimension_value(self, dimension: Dimension, record: Any) -> str | None:
        """Partition key of *record* for a category dimension."""
        if dimension is Dimension.SUITE_CATEGORY:
            return getattr(record, "suite_category", None)
        if dimension is Dimension.CHANNEL_TYPE:
            channel = channel_type_for(record)
            return channel.value if channel is not None else None
        if dimension is Dimension.SHIFT:
            return shift_for(record).value
        return None

    def declared_keys(self, dimension: Dimension, suite_categories: Sequence[str]) -> tuple[str, ...]:
        """Output order of category partitions."""
        if dimension is Dimension.SUITE_CATEGORY:
            return tuple(suite_categories)
        if dimension is Dimension.CHANNEL_TYPE:
            return tuple(channel.value for channel in ChannelType)
        if dimension is Dimension.SHIFT:
            return tuple(shift.value for shift in Shift)
        return ()
