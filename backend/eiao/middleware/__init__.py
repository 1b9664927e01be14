# Middleware package init
"""
Everything Is An Ordeal: Middleware Package
==============================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → Route Handler

    Request ID runs first so the access log line and any error response
    carry the same correlation ID.
"""
