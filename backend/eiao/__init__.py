"""
Everything Is An Ordeal: Application Package
==============================================

What: Web app that turns any URL path into an "ordeal": a page with an
      uploaded image and a hit counter.
Who:  Imported by uvicorn (`eiao.main:app`), Alembic, pytest and the CLI.

Architecture Note:
    ┌─────────────────────────────────────┐
    │   Routes (API + HTML pages)         │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services                          │  ← OrdealService, ImageService,
    │                                     │    HitCounter, path normalizer
    ├─────────────────────────────────────┤
    │   Store (OrdealStore interface)     │  ← SQL or in-memory
    ├─────────────────────────────────────┤
    │   Database (async SQLAlchemy)       │
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
