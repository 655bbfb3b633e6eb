"""Adapters — persistence for the content lifecycle engine.

Contains:
- database.py      — Async engine, session factory and declarative Base
- content.py       — Generic content repository and the ContentRegistry
- repositories.py  — ContentVersionRepository and ReviewRepository
- audit_log.py     — Append-only AuditLogRepository
"""

__all__: list[str] = []
