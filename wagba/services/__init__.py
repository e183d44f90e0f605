"""
                        Services Module

Business logic for the meal-subscription platform. External integrations
follow the hybrid pattern: a Mock implementation for development and a Real
one for staging/production, chosen by ``ENV_MODE``.

Services:
    - payment: Paymob Accept checkout, saved-card charges and HMAC checks
    - notifications: SendGrid transactional email
    - pricing, weeks, orders, payments, billing: ordering core
    - onboarding, accounts, menu: customers, admins and catalog
    - excel_manager: process-safe weekly order sheets
"""

from wagba.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
