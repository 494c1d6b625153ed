"""AffiliateWP integration package."""

from .client import AffiliateWPClient

__all__ = ["AffiliateWPClient"]
