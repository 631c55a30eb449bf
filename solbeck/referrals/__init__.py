"""Referral programs and the per-user free-wallet quota tracker."""

from solbeck.referrals.models import (
    DEFAULT_REFERRAL_PROGRAMS,
    ReferralProgram,
    ReferralState,
    parse_referral_programs,
)
from solbeck.referrals.tracker import ReferralTracker, feeless_eligible

__all__ = [
    "DEFAULT_REFERRAL_PROGRAMS",
    "ReferralProgram",
    "ReferralState",
    "ReferralTracker",
    "feeless_eligible",
    "parse_referral_programs",
]
