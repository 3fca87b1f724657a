"""
catequesis_api.auth

Authentication package.

Responsibilities:
- JWT helpers and validation.
- Principal / directory models and the SQL-backed Principal Directory.
- Password hashing.
"""

# Package marker.
