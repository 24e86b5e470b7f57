"""
PeakSelf Backend — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request, plus the auth guard
       and route rate limiters used as dependencies.

Middleware Chain (outermost first, see create_app):
    CORS → Request ID → Access Log → Global Rate Limit → Security Headers
         → CSRF → Session → GZip → Route Handler

    - CORS outermost: 429/403 rejections from inner layers still carry CORS
      headers, so the browser shows the real error instead of a CORS failure.
    - Request ID before the access log so every log line is correlated.
    - Global rate limit inside both, so its 429s carry a request id and are
      logged.
    - CSRF before the session: a forged request is rejected before any
      session state is touched.

Dependencies (per route):
    auth.require_auth / auth.require_admin
    rate_limit.auth_password_limiter, auth_oauth_limiter, ...
    csrf.require_csrf_token (multipart routes the CSRF middleware skips)
"""
