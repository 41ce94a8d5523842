"""
Payments Module

Stripe Checkout sessions and webhook handling for coach bookings.
"""

from .router import router

__all__ = ["router"]
