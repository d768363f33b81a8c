"""
Relief workflow modules.

One package per workflow entity (campaign, phase, budget, ingredient,
operation, expense, meal_batch, delivery).  Each holds frozen DTOs
(``models``), ORM persistence (``orm``), its transition table
(``workflows``) and a flush-only ``service``.
"""
