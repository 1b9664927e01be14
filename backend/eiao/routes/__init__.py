# Routes package init
"""
Everything Is An Ordeal: Routes Package
==========================================

Route Inventory:
    - api.py:     POST   /api/ordeal/create
                  DELETE /api/ordeal/delete/{path}
                  GET    /api/ordeal/{path}
    - health.py:  GET    /api/health
    - pages.py:   GET    /, /leaderboard, /manage
                  GET    /{ordeal}  (catch-all, registered last)

Routes stay thin: read the request, call OrdealService, shape the response.
"""
