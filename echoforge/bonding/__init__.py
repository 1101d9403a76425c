"""
echoforge.bonding - primary issuance along the convex price curve.
"""

from .curve import BondingCurve, BuyQuote, CurveState

__all__ = ["BondingCurve", "BuyQuote", "CurveState"]
