"""
PeakSelf Backend — API Routes Package
=======================================

Route Inventory:
    - auth.py:    /api/auth/*        register, login, verify-email, logout,
                                     me, google, google/callback, google/failure
    - admin.py:   GET  /api/admin    admin welcome (require_admin)
    - errors.py:  POST /api/errors/log
    - csrf.py:    GET  /api/csrf-token
    - health.py:  GET  /api/health, /api/health/ready, /api/health/live

Design Principle:
    Routes are thin: parse the request, call a service, shape the response.
    Errors are raised as app.exceptions types and rendered by the global
    handlers in app.main.
"""
