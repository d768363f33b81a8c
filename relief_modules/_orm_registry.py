"""
Module ORM Registry (``relief_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions (and string-named
relationships resolve) before tables are created or a mapper is used.

Usage
-----
``relief_kernel.db.engine.create_tables()`` calls
``import_all_orm_models()`` before ``create_all``.
"""


def import_all_orm_models() -> None:
    """Import every ``relief_modules.*.orm`` module.  Idempotent."""
    # fmt: off
    import relief_modules.phase.orm  # noqa: F401
    import relief_modules.campaign.orm  # noqa: F401
    import relief_modules.ingredient.orm  # noqa: F401
    import relief_modules.operation.orm  # noqa: F401
    import relief_modules.expense.orm  # noqa: F401
    import relief_modules.meal_batch.orm  # noqa: F401
    import relief_modules.delivery.orm  # noqa: F401
    # fmt: on
