# app/schemas/__init__.py
"""
API request/response models.

No aggregated exports: import from the concrete module, e.g.
    from app.schemas.reservation import ReservationOut
    from app.schemas.listing import ListingOut
"""

__all__: list[str] = []
