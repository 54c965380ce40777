from typing import Optional

from loguru import logger

from pawa_shared.db.repositories.debt import DebtRepository
from pawa_shared.db.repositories.payment import PaymentRepository
from pawa_shared.db.repositories.user import UserRepository

from flex_rental.clients.payment_gateway import ChargeResult, PaymentGatewayClient
from flex_rental.core.exceptions import PaymentNotConfiguredException
from flex_rental.core.pricing import PricingPolicy
from flex_rental.monitoring.metrics import MetricsCollector


class ChargePurpose:
    VALIDATION = "validation"
    USAGE = "usage"
    PENALTY = "penalty"
    REFUND = "refund"


class PaymentService:
    def __init__(
        self,
        payment_repo: PaymentRepository,
        debt_repo: DebtRepository,
        user_repo: UserRepository,
        gateway: PaymentGatewayClient,
        policy: PricingPolicy,
    ):
        self.payment_repo = payment_repo
        self.debt_repo = debt_repo
        self.user_repo = user_repo
        self.gateway = gateway
        self.policy = policy

    def ensure_configured(self) -> None:
        if not self.gateway.is_configured:
            raise PaymentNotConfiguredException()

    def ensure_customer(self, user_id: str, email: Optional[str]) -> ChargeResult:
        """Returns the user's gateway customer id, creating it on first use."""
        user = self.user_repo.get_by_id(user_id)
        if user and user.stripe_customer_id:
            return ChargeResult(success=True, charge_id=user.stripe_customer_id)

        result = self.gateway.create_customer(user_id, email or (user.email if user else None))
        if result.success:
            self.user_repo.set_stripe_customer_id(user_id, result.charge_id)
        return result

    def charge_for_rental(
        self,
        rental_id: str,
        user_id: str,
        customer_ref: str,
        payment_method_ref: str,
        amount: int,
        purpose: str,
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> ChargeResult:
        # a charge already captured for this rental and purpose is never repeated
        existing = self.payment_repo.find_successful_charge(rental_id, purpose)
        if existing:
            logger.info(
                f"Reusing {purpose} charge {existing.charge_id} for rental {rental_id}"
            )
            return ChargeResult(success=True, charge_id=existing.charge_id, status="succeeded")

        result = self.gateway.charge(
            customer_ref=customer_ref,
            payment_method_ref=payment_method_ref,
            amount=amount,
            currency=self.policy.currency,
            metadata={
                "type": f"flex_rental_{purpose}",
                "purpose": purpose,
                "rental_id": rental_id,
                "user_id": user_id,
                **(metadata or {}),
            },
            description=description,
            idempotency_key=f"rental:{rental_id}:{purpose}",
        )

        self.payment_repo.create_payment_attempt(
            rental_id=rental_id,
            purpose=purpose,
            amount=amount,
            success=result.success,
            charge_id=result.charge_id if result.success else None,
            error=None if result.success else result.error,
        )
        MetricsCollector.record_charge(purpose, result.success, amount)
        return result

    def charge_with_debt_fallback(
        self,
        rental_id: str,
        user_id: str,
        customer_ref: str,
        payment_method_ref: str,
        amount: int,
        purpose: str,
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> ChargeResult:
        result = self.charge_for_rental(
            rental_id,
            user_id,
            customer_ref,
            payment_method_ref,
            amount,
            purpose,
            metadata,
            description,
        )

        if not result.success:
            logger.warning(
                f"{purpose} charge failed for rental {rental_id}, recording debt of {amount}: {result.error}"
            )
            self.debt_repo.attach_debt(rental_id, amount)

        return result

    def refund_for_rental(self, rental_id: str, charge_id: str, amount: int) -> ChargeResult:
        result = self.gateway.refund(charge_id, idempotency_key=f"rental:{rental_id}:refund")
        self.payment_repo.create_payment_attempt(
            rental_id=rental_id,
            purpose=ChargePurpose.REFUND,
            amount=amount,
            success=result.success,
            charge_id=result.charge_id if result.success else None,
            error=None if result.success else result.error,
        )
        MetricsCollector.record_charge(ChargePurpose.REFUND, result.success, amount)
        if not result.success:
            logger.error(f"Refund of charge {charge_id} for rental {rental_id} failed: {result.error}")
        return result

    def get_outstanding_debt(self, rental_id: str) -> int:
        return self.debt_repo.get_amount(rental_id)

    def get_captured_charge(self, rental_id: str, purpose: str):
        return self.payment_repo.find_successful_charge(rental_id, purpose)
