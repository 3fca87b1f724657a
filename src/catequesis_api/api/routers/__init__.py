"""
catequesis_api.api.routers

HTTP routers. Every non-health endpoint goes through `api.gating.guard`.
"""

# Package marker.
