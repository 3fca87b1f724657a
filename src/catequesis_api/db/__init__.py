"""
catequesis_api.db

Persistence package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, and repositories.
- Back the Principal Directory used by the request-gating pipeline.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The gating core only ever reads users through `auth.directory.SqlPrincipalDirectory`.
