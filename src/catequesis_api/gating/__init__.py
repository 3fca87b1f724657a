"""
catequesis_api.gating

Request-gating pipeline.

Responsibilities:
- Typed rejections and their HTTP status mapping.
- Route policies, sliding-window rate limiting and the individual gates.
- The orchestrator folding a request context through the ordered stages.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing in this package imports FastAPI; `api.gating` is the only HTTP bridge.
