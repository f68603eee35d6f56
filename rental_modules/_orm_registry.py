"""
Module ORM Registry (``rental_modules._orm_registry``).

Ensures all ORM models are imported so that ``Base.metadata`` contains
their table definitions before tables are created.  Called by
``rental_kernel.db.engine.create_tables()``, scripts and ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``rental_modules.*.orm`` module.

    Kernel tables (organizations, units, payments, audit events) are
    registered first; module tables hold foreign keys to them.
    This function is idempotent -- repeated calls are harmless.
    """
    import rental_kernel.models  # noqa: F401
    import rental_modules.lease.orm  # noqa: F401
    import rental_modules.invoicing.orm  # noqa: F401
    import rental_modules.payments.orm  # noqa: F401
