"""
Storefront Notification Core.

- backend/: FastAPI backend, poll event log, email work queue and worker
"""
