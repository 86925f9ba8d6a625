"""
Module: assetflow_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    depreciation engines.  This is the canonical import surface for
    higher layers (assetflow_services, assetflow_modules).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import assetflow_kernel (and sibling engine modules).
    MUST NOT import assetflow_services or assetflow_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``;
      dates are passed in explicitly.
    - Decimal-only arithmetic; floats are forbidden.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Schedule and book-value computations are traced via ``@traced_engine``
    (ASSET_ENGINE_TRACE log records with an input fingerprint).
"""

from assetflow_engines.depreciation import DepreciationCalculator, DepreciationMethod
from assetflow_engines.schedule import (
    DepreciationBasis,
    DepreciationScheduleEntry,
    ScheduleGenerator,
    ScheduleSummary,
)
from assetflow_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DepreciationCalculator",
    "DepreciationMethod",
    "DepreciationBasis",
    "DepreciationScheduleEntry",
    "ScheduleGenerator",
    "ScheduleSummary",
    "compute_input_fingerprint",
    "traced_engine",
]
