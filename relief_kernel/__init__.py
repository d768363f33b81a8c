"""
Relief Kernel - campaign phase workflow core

A transactional, auditable engine for food-relief campaigns with:
- Exact budget allocation per phase (no rounding drift)
- Request / disbursement lifecycles gated by a fixed phase state machine
- Per-phase serialization with optimistic version checks
- Structured, typed errors
"""

__version__ = "0.1.0"
