"""
PeakSelf Backend — Service Layer
==================================

Business logic independent of HTTP:
    auth_service   accounts, passwords, JWTs, Google account upsert
    email_service  verification mail (aiosmtplib + tenacity retry)
    google_oauth   Google authorization-code flow (httpx)
    maintenance    pending-registration and soft-delete cleanup
"""
