"""
HTTP routers, one module per area of the API.
"""

from wagba.routers import admin, auth, menu, onboarding, orders, payments, users

all_routers = [
    auth.router,
    onboarding.router,
    menu.router,
    users.router,
    orders.router,
    payments.router,
    admin.router,
]

__all__ = ["all_routers"]
