"""
Route modules for the shopping bag service.
"""

from .coupons import router as coupons_router

__all__ = ["coupons_router"]
