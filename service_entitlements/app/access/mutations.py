"""
User-initiated entitlement mutations: beta redemption, trial start, checkout.
"""

from dataclasses import dataclass
from typing import Optional

from shared.errors import AuthorityRejectedError, AuthorityUnavailableError
from shared.logging import get_logger
from .models import AccessRecord
from .resolver import EntitlementResolver
from ..authority.client import AuthorityClient
from ..cache.entitlement_cache import EntitlementCache


UNREACHABLE_MESSAGE = "Could not reach the billing service. Please try again."


@dataclass(frozen=True)
class BetaRedemptionResult:
    success: bool
    message: str
    access: Optional[AccessRecord] = None


@dataclass(frozen=True)
class TrialStartResult:
    success: bool
    days_remaining: Optional[int] = None
    message: Optional[str] = None
    access: Optional[AccessRecord] = None


class MutationOperations:
    """Remote mutations that re-resolve access after every success.

    None of these touch local state directly and none raise; each reports a
    success discriminant the caller can show to the user.
    """

    def __init__(self,
                 authority: AuthorityClient,
                 resolver: EntitlementResolver,
                 cache: EntitlementCache,
                 success_url: Optional[str] = None,
                 cancel_url: Optional[str] = None):
        self.authority = authority
        self.resolver = resolver
        self.cache = cache
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.logger = get_logger("entitlements.mutations")

    async def redeem_beta_code(self, code: str, user_id: str, email: Optional[str] = None) -> BetaRedemptionResult:
        normalized = code.strip().upper()
        if not normalized:
            return BetaRedemptionResult(success=False, message="Beta code is required")

        try:
            body = await self.authority.redeem_beta_code(normalized, user_id, email)
        except AuthorityRejectedError as e:
            self.logger.info("Beta code rejected", user_id=user_id, status_code=e.status_code)
            return BetaRedemptionResult(success=False, message=e.authority_message or e.message)
        except AuthorityUnavailableError:
            return BetaRedemptionResult(success=False, message=UNREACHABLE_MESSAGE)

        if not body.get("success"):
            return BetaRedemptionResult(
                success=False,
                message=body.get("message") or body.get("error") or "Beta code could not be redeemed"
            )

        access = await self.resolver.resolve(user_id, is_guest=False)
        self.logger.info("Beta code redeemed", user_id=user_id, access_type=access.access_type.value)
        return BetaRedemptionResult(success=True, message=body.get("message") or "Beta access granted", access=access)

    async def start_trial(self, user_id: str) -> TrialStartResult:
        try:
            body = await self.authority.start_trial(user_id)
        except AuthorityRejectedError as e:
            return TrialStartResult(success=False, message=e.authority_message or e.message)
        except AuthorityUnavailableError:
            # No local fallback for mutations
            return TrialStartResult(success=False, message=UNREACHABLE_MESSAGE)

        if not body.get("success"):
            return TrialStartResult(success=False, message=body.get("message") or body.get("error"))

        access = await self.resolver.resolve(user_id, is_guest=False)
        days = body.get("daysRemaining")
        self.logger.info("Trial started", user_id=user_id, days_remaining=days)
        return TrialStartResult(
            success=True,
            days_remaining=days if isinstance(days, int) else None,
            message=body.get("message"),
            access=access
        )

    async def create_checkout_session(self, plan_id: str, user_id: str, email: Optional[str] = None) -> Optional[str]:
        """Redirect URL for payment, or None when checkout could not start.

        None never means "no payment required".
        """
        coupon_id = await self.cache.get_beta_coupon(user_id)

        try:
            body = await self.authority.create_checkout_session(
                plan_id,
                user_id,
                email,
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                coupon_id=coupon_id
            )
        except (AuthorityRejectedError, AuthorityUnavailableError) as e:
            self.logger.warning("Checkout session not created", user_id=user_id, plan_id=plan_id, error=e.message)
            return None

        url = body.get("url")
        if not isinstance(url, str) or not url:
            self.logger.warning("Checkout response carried no url", user_id=user_id, plan_id=plan_id)
            return None

        self.logger.info("Checkout session created", user_id=user_id, plan_id=plan_id, has_coupon=bool(coupon_id))
        return url
