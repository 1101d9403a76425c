"""
echoforge.referral - write-once sponsor forest and bounded-depth reward walk.
"""

from .distributor import ReferralCredit, ReferralForest, ReferralNode

__all__ = ["ReferralCredit", "ReferralForest", "ReferralNode"]
