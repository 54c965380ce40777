from typing import Optional, Tuple

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pawa_shared.db.models import PaymentMethod, Rental, RentalStatus
from pawa_shared.db.repositories.idempotency import IdempotencyRepository
from pawa_shared.db.repositories.payment_method import PaymentMethodRepository
from pawa_shared.db.repositories.rental import RentalRepository

from flex_rental.core.exceptions import (
    InvalidPaymentMethodException,
    NoPaymentMethodException,
    PaymentFailedException,
    PowerbankInUseException,
    RentalCoreException,
    RentalNotActiveException,
    RentalNotFoundException,
    StationNotFoundException,
    StationUnavailableException,
    ValidationError,
)
from flex_rental.core.pricing import (
    PricingPolicy,
    RentalCharge,
    calculate_rental_charge,
    duration_minutes,
)
from flex_rental.core.utils import cents_to_euros, ensure_aware, utcnow, uuid4
from flex_rental.monitoring.metrics import MetricsCollector
from flex_rental.schemas import (
    EndRentalRequest,
    PenaltyBreakdown,
    PricingSummary,
    RentalClosedResponse,
    RentalStartedResponse,
    StartRentalRequest,
    UsageBreakdown,
)
from flex_rental.services.inventory import InventoryLedger, InventoryOutcome
from flex_rental.services.payment import ChargePurpose, PaymentService
from flex_rental.services.points import PointsService

START_SCOPE = "rentals:start"


class RentalService:
    """
    Owns the active -> completed | purchased transition and its side effects.

    Start is all-or-nothing: when any step after the slot reservation fails,
    the slot is released and a captured validation charge is refunded. End always
    closes the rental once the bank is physically back; a failed closing
    charge is kept as debt for later collection.
    """

    def __init__(
        self,
        session: Session,
        rental_repo: RentalRepository,
        payment_method_repo: PaymentMethodRepository,
        idempotency_repo: IdempotencyRepository,
        inventory: InventoryLedger,
        payment_service: PaymentService,
        points_service: PointsService,
        policy: PricingPolicy,
    ):
        self.session = session
        self.rental_repo = rental_repo
        self.payment_method_repo = payment_method_repo
        self.idempotency_repo = idempotency_repo
        self.inventory = inventory
        self.payment_service = payment_service
        self.points_service = points_service
        self.policy = policy

    def get_pricing(self) -> PricingSummary:
        policy = self.policy
        return PricingSummary(
            rate_per_half_hour=cents_to_euros(policy.rate_per_block),
            daily_cap=cents_to_euros(policy.daily_cap),
            daily_cap_hours=policy.daily_cap_hours,
            late_penalty_days=policy.late_penalty_days,
            late_penalty_amount=cents_to_euros(policy.late_penalty_amount),
            validation_fee=cents_to_euros(policy.validation_fee),
            currency=policy.currency,
        )

    # --- start ---

    def start_rental(
        self,
        user_id: str,
        request: StartRentalRequest,
        idempotency_key: Optional[str] = None,
        email: Optional[str] = None,
    ) -> RentalStartedResponse:
        logger.info(
            f"Starting rental for user {user_id} at station {request.station_id}, "
            f"idempotency key: {idempotency_key}"
        )

        if idempotency_key:
            cached = self.idempotency_repo.get_cached_response(
                idempotency_key, START_SCOPE, user_id
            )
            if cached:
                logger.info(f"Returning cached response for idempotency key: {idempotency_key}")
                return RentalStartedResponse(**cached)
            if self.idempotency_repo.get_idempotency_key(idempotency_key):
                logger.warning(f"Idempotency key {idempotency_key} reused by user {user_id}")
                raise ValidationError(
                    "Idempotency key already used", code="IDEMPOTENCY_KEY_REUSED"
                )

        self.payment_service.ensure_configured()
        payment_method = self._resolve_payment_method(user_id, request.payment_method_id)

        powerbank_id = request.powerbank_id or uuid4()
        if self.rental_repo.get_active_by_powerbank(powerbank_id):
            logger.warning(f"Powerbank {powerbank_id} already has an active rental")
            raise PowerbankInUseException()

        reservation = self.inventory.reserve_slot(request.station_id)
        if reservation.outcome == InventoryOutcome.STATION_NOT_FOUND:
            raise StationNotFoundException()
        if not reservation.ok:
            raise StationUnavailableException()
        # the slot is held before talking to the gateway, no row lock across the call
        self.session.commit()

        rental_id = uuid4()
        try:
            rental, failure = self._charge_and_persist(
                rental_id, user_id, email, powerbank_id, request.station_id, payment_method
            )
            if failure is None:
                response = self._started_response(rental)
                if idempotency_key:
                    self.idempotency_repo.create_idempotency_key(
                        key=idempotency_key,
                        scope=START_SCOPE,
                        user_id=user_id,
                        response_data=response.model_dump(mode="json"),
                    )
                # rental row and key land together; a failure here is compensated below
                self.session.commit()
        except IntegrityError:
            self._compensate_start(rental_id, request.station_id)
            cached = (
                self.idempotency_repo.get_cached_response(idempotency_key, START_SCOPE, user_id)
                if idempotency_key
                else None
            )
            if cached:
                logger.info(
                    f"Concurrent request already started a rental for key {idempotency_key}"
                )
                return RentalStartedResponse(**cached)
            raise
        except Exception as e:
            logger.warning(f"Start of rental {rental_id} failed, compensating: {e}")
            self._compensate_start(rental_id, request.station_id)
            raise

        if failure is not None:
            self._compensate_start(rental_id, request.station_id, rollback=False)
            MetricsCollector.record_rental("failed")
            raise failure

        MetricsCollector.record_rental(RentalStatus.ACTIVE)
        logger.info(f"Rental {rental.id} started successfully")
        return response

    def _started_response(self, rental: Rental) -> RentalStartedResponse:
        return RentalStartedResponse(
            rental_id=rental.id,
            powerbank_id=rental.powerbank_id,
            station_id=rental.station_start_id,
            start_time=ensure_aware(rental.start_time),
            validation_fee_charged=True,
            validation_amount=cents_to_euros(rental.validation_amount),
            included_minutes=self.policy.block_minutes,
            pricing=self.get_pricing(),
        )

    def _resolve_payment_method(
        self, user_id: str, payment_method_id: Optional[str]
    ) -> PaymentMethod:
        if payment_method_id:
            method = self.payment_method_repo.get_active_for_user(user_id, payment_method_id)
            if not method:
                logger.warning(
                    f"Payment method {payment_method_id} rejected for user {user_id}"
                )
                raise InvalidPaymentMethodException()
            return method

        method = self.payment_method_repo.get_primary_for_user(user_id)
        if not method:
            raise NoPaymentMethodException()
        return method

    def _charge_and_persist(
        self,
        rental_id: str,
        user_id: str,
        email: Optional[str],
        powerbank_id: str,
        station_id: str,
        payment_method: PaymentMethod,
    ) -> Tuple[Optional[Rental], Optional[RentalCoreException]]:
        customer = self.payment_service.ensure_customer(user_id, email)
        if not customer.success:
            logger.warning(f"Could not set up gateway customer for user {user_id}: {customer.error}")
            return None, PaymentFailedException(customer.error)

        amount = self.policy.validation_fee
        charge = self.payment_service.charge_for_rental(
            rental_id=rental_id,
            user_id=user_id,
            customer_ref=customer.charge_id,
            payment_method_ref=payment_method.stripe_payment_method_id,
            amount=amount,
            purpose=ChargePurpose.VALIDATION,
            metadata={"powerbank_id": powerbank_id, "station_id": station_id},
            description=(
                f"Powerbank rental - €{cents_to_euros(amount):.2f} "
                f"(first {self.policy.block_minutes} minutes) - Station {station_id}"
            ),
        )
        # keep the attempt even if the insert below fails
        self.session.commit()

        if not charge.success:
            logger.warning(f"Validation charge failed for rental {rental_id}: {charge.error}")
            return None, PaymentFailedException(charge.error)

        now = utcnow()
        rental = Rental(
            id=rental_id,
            user_id=user_id,
            powerbank_id=powerbank_id,
            station_start_id=station_id,
            start_time=now,
            status=RentalStatus.ACTIVE,
            penalty_amount=0,
            validation_amount=amount,
            stripe_customer_id=customer.charge_id,
            stripe_payment_method_id=payment_method.stripe_payment_method_id,
            validation_charge_id=charge.charge_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self.rental_repo.create_rental(rental)
        except IntegrityError:
            # lost the double-start race on this powerbank
            self.session.rollback()
            logger.warning(
                f"Powerbank {powerbank_id} was rented concurrently, refunding {charge.charge_id}"
            )
            self.payment_service.refund_for_rental(rental_id, charge.charge_id, amount)
            return None, PowerbankInUseException()

        return rental, None

    def _compensate_start(self, rental_id: str, station_id: str, rollback: bool = True) -> None:
        """Undoes a half-finished start: refunds a captured validation charge, frees the slot."""
        if rollback:
            self.session.rollback()

        captured = self.payment_service.get_captured_charge(rental_id, ChargePurpose.VALIDATION)
        if captured and not self.payment_service.get_captured_charge(
            rental_id, ChargePurpose.REFUND
        ):
            self.payment_service.refund_for_rental(rental_id, captured.charge_id, captured.amount)

        result = self.inventory.release_slot(station_id)
        self.session.commit()
        logger.info(
            f"Compensated start of rental {rental_id} at station {station_id}: "
            f"{result.outcome.value}"
        )

    # --- end ---

    def end_rental(self, user_id: str, request: EndRentalRequest) -> RentalClosedResponse:
        logger.info(
            f"Ending rental {request.rental_id} at station {request.return_station_id}"
        )

        self.payment_service.ensure_configured()

        rental = self.rental_repo.get_for_user(request.rental_id, user_id)
        if not rental:
            logger.error(f"Rental {request.rental_id} not found for user {user_id}")
            raise RentalNotFoundException()
        if rental.status != RentalStatus.ACTIVE:
            raise RentalNotActiveException()
        rental_id = rental.id

        end_time = utcnow()
        duration = duration_minutes(rental.start_time, end_time)
        charge = calculate_rental_charge(duration, self.policy)
        owed = charge.amount_owed
        already_paid = rental.validation_amount or 0
        additional = max(0, owed - already_paid)
        purpose = ChargePurpose.PENALTY if charge.penalty.is_late else ChargePurpose.USAGE

        usage_charge_id = None
        charge_succeeded = True
        if additional > 0:
            result = self.payment_service.charge_with_debt_fallback(
                rental_id=rental.id,
                user_id=user_id,
                customer_ref=rental.stripe_customer_id,
                payment_method_ref=rental.stripe_payment_method_id,
                amount=additional,
                purpose=purpose,
                metadata={
                    "duration_minutes": duration,
                    "is_late_penalty": charge.penalty.is_late,
                    "is_purchase": charge.penalty.is_purchase,
                },
                description=self._describe_charge(charge),
            )
            charge_succeeded = result.success
            usage_charge_id = result.charge_id if result.success else None

        release = self.inventory.release_slot(request.return_station_id)
        if not release.ok:
            logger.warning(
                f"Rental {rental.id} returned to unknown station {request.return_station_id}"
            )

        status = charge.target_status
        closed = self.rental_repo.close_rental(
            rental.id,
            status=status,
            station_end_id=request.return_station_id,
            end_time=end_time,
            total_minutes=duration,
            usage_amount=owed,
            penalty_amount=charge.penalty.penalty_amount,
            usage_charge_id=usage_charge_id,
        )
        if not closed:
            logger.warning(f"Rental {rental_id} was closed concurrently")
            raise RentalNotActiveException()

        if status == RentalStatus.COMPLETED:
            # savepoint keeps the close intact when the award fails
            try:
                with self.session.begin_nested():
                    self.points_service.award_rental_completed(user_id, rental_id)
            except Exception as e:
                logger.warning(f"Awarding points for rental {rental_id} failed: {e}")

        MetricsCollector.record_rental(status)
        MetricsCollector.record_rental_duration(duration * 60)
        logger.info(
            f"Rental {rental_id} closed as {status}: {duration} min, owed={owed}, "
            f"additional={additional}, charged={charge_succeeded}"
        )

        return RentalClosedResponse(
            rental_id=rental_id,
            status=status,
            duration_minutes=duration,
            validation_fee_paid=cents_to_euros(already_paid),
            additional_charge=cents_to_euros(additional),
            total_charge=cents_to_euros(owed),
            is_late_penalty=charge.penalty.is_late,
            is_purchase=charge.penalty.is_purchase,
            charge_succeeded=charge_succeeded,
            breakdown=self._breakdown(charge),
        )

    def _describe_charge(self, charge: RentalCharge) -> str:
        if charge.penalty.is_late:
            return (
                f"Powerbank not returned within {self.policy.late_penalty_days} days - "
                f"Purchase penalty: €{cents_to_euros(charge.penalty.rental_fee):.2f} rental + "
                f"€{cents_to_euros(charge.penalty.purchase_fee):.2f} penalty = "
                f"€{cents_to_euros(charge.penalty.penalty_amount):.2f}"
            )
        usage = charge.usage
        if usage.capped_at_daily_limit:
            return (
                f"Powerbank rental - {charge.duration_minutes} minutes ({usage.blocks} blocks) "
                f"- Daily cap applied: €{cents_to_euros(self.policy.daily_cap):.2f}"
            )
        return (
            f"Powerbank rental - {charge.duration_minutes} minutes ({usage.blocks} blocks) "
            f"@ €{cents_to_euros(self.policy.rate_per_block):.2f} per {self.policy.block_minutes} min"
        )

    def _breakdown(self, charge: RentalCharge):
        if charge.penalty.is_late:
            return PenaltyBreakdown(
                rental_days=charge.penalty.rental_days,
                rental_fee=cents_to_euros(charge.penalty.rental_fee),
                purchase_penalty=cents_to_euros(charge.penalty.purchase_fee),
                total=cents_to_euros(charge.penalty.penalty_amount),
                note=(
                    f"Powerbank not returned within {self.policy.late_penalty_days} days "
                    "- considered purchased"
                ),
            )
        return UsageBreakdown(
            blocks=charge.usage.blocks,
            rate_per_block=cents_to_euros(self.policy.rate_per_block),
            capped_at_daily=charge.usage.capped_at_daily_limit,
            daily_cap=cents_to_euros(self.policy.daily_cap),
            full_days=charge.usage.full_days,
        )
