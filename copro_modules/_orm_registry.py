"""
Module ORM Registry (``copro_modules._orm_registry``).

Responsibility
--------------
Import every ORM model so that ``Base.metadata`` holds the complete
schema before ``create_tables()`` runs.  Kernel models come first because
module tables reference ``accounting_accounts`` and ``accounting_lines``.

Usage
-----
``copro_kernel.db.engine.create_tables()`` calls this; scripts and
``tests/conftest.py`` go through ``create_tables()``.
"""


def import_all_orm_models() -> None:
    """Register kernel and module ORM models (idempotent)."""
    import copro_kernel.models  # noqa: F401
    # fmt: off
    import copro_modules.distribution.orm  # noqa: F401
    import copro_modules.budget.orm  # noqa: F401
    import copro_modules.regularization.orm  # noqa: F401
    import copro_modules.bank.orm  # noqa: F401
    import copro_modules.works_fund.orm  # noqa: F401
    # fmt: on
