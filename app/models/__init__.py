# app/models/__init__.py
"""
ORM model exports.
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- sellers --------
    ("app.models.business", "Business"),
    ("app.models.branch", "Branch"),
    # -------- inventory --------
    ("app.models.food_listing", "FoodListing"),
    # -------- reservations & payments --------
    ("app.models.reservation", "Reservation"),
    ("app.models.reservation_item", "ReservationItem"),
    ("app.models.payment_transaction", "PaymentTransaction"),
    # -------- notifications --------
    ("app.models.notification", "Notification"),
    ("app.models.notification_preferences", "UserNotificationPreferences"),
]

for _m, _c in MODEL_SPECS:
    _export(_m, _c)

__all__ = [c for _, c in MODEL_SPECS]
