"""
Expense Tracker Backend
=======================

Layers:
    routes/      HTTP concerns only
    auth/        token verification, identity resolution, request identity gate
    ratelimit/   quota policies, the in-memory quota counter, per-route limiters
    services/    business logic and the AI collaborator
    models/      SQLAlchemy ORM;  schemas/  Pydantic API contracts
    database.py  async engine and per-request sessions
"""

__version__ = "1.0.0"
