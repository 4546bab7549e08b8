"""
Libris Backend — Application Package Initializer
=================================================

What: Marks the `libris` directory as a Python package.
Why:  Enables module imports like `from libris.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    Both library microservices (Loan and Profile) share one layered package:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Lifecycle, Profile,     │  ← Orchestration, validation
    │   Inventory client, Loan store)     │
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Which routers are mounted is decided by `settings.enabled_services`, so the
    same code base can be deployed as the Loan service, the Profile service,
    or both at once.
"""

__version__ = "1.0.0"
