"""
catequesis_api.api

API package for the catechesis backend.

Responsibilities:
- FastAPI app factory and router modules.
- Bridge between HTTP requests and the request-gating pipeline.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The API layer should remain thin: request validation + gating + delegation to repositories.
