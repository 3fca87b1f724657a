"""
catequesis_api.db.repositories

Repository layer (thin data-access objects over AsyncSession).
"""

# Package marker.
