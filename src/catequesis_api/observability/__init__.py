"""
catequesis_api.observability

Observability package.

Responsibilities:
- Structured logging configuration.
- Request context propagation for consistent log enrichment.
- Non-blocking activity logging for successful gated operations.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Metrics/tracing exporters can be added here without touching gating logic.
