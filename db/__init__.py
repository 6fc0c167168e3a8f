"""
Database utilities, migrations, and seeding.

Runtime DB access lives in the services. This package is for repo-level DB operations:
- Alembic migrations config
- Deterministic seed generator
"""
