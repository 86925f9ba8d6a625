"""
Module ORM Registry (``assetflow_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before tables are created, and provide
``create_all_tables()`` -- the entry point that registers every model and
then creates every table.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from ``assetflow_modules`` packages
and from ``assetflow_kernel.db.engine`` (allowed: modules -> kernel).
MUST NOT be imported by ``assetflow_kernel`` or ``assetflow_services``.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine


def import_all_orm_models() -> None:
    """Import kernel models and every ``assetflow_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import assetflow_kernel.models  # noqa: F401
    import assetflow_kernel.services.sequence_service  # noqa: F401
    import assetflow_modules.assets.orm  # noqa: F401


def create_all_tables(engine: Engine) -> None:
    """Create kernel and asset tables on ``engine``."""
    from assetflow_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables(engine)
