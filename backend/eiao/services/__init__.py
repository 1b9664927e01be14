# Services package init
"""
Everything Is An Ordeal: Services Layer
==========================================

What:  Business logic between the routes (HTTP) and the store (persistence).

Service Inventory:
    - normalize_path: URL segment → storage key
    - OrdealStore (abstract): persistence contract
      ├── SqlOrdealStore: async SQLAlchemy
      └── InMemoryOrdealStore: tests and experiments
    - ImageService: stage, resize, store and delete ordeal images
    - HitCounter: ordered background queue of hit increments
    - OrdealService: orchestrates create → view → delete and the aggregates
"""
