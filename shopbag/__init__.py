"""Shopping bag coupon service."""
