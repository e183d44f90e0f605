"""
                Wagba Meal Subscriptions

Backend for a weekly meal-subscription service: menus, plan building,
checkout with Paymob, delivery skipping and administration.

Author: Wagba Engineering
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Wagba Engineering"
