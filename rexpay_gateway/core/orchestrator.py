"""
Card payment orchestration against the Rexpay gateway.

Sequences the payment lifecycle:
1. initialize_payment: pick a subaccount, open the gateway transaction,
   seal the card residue into an encrypted envelope
2. authorize_payment: open the envelope, charge through the same
   subaccount, surface any 3-D-Secure challenge
3. retrieve_payment / finalize_payment / refund_payment

Every gateway call runs through the RetryExecutor; every settled
attempt feeds the SubaccountSelector's metrics.
"""
import json
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import httpx
import structlog
from pydantic import ValidationError as SchemaValidationError

from rexpay_gateway.config import Settings
from rexpay_gateway.core.encryption import EncryptionCodec
from rexpay_gateway.core.exceptions import (
    DecryptionError,
    ErrorKind,
    InternalServerError,
    NoHealthySubaccountError,
    PaymentError,
    RexpayError,
    ValidationError,
)
from rexpay_gateway.core.helpers import (
    build_billing_information,
    build_device_information,
    clean_card_number,
    format_amount,
    map_gateway_status,
    mask_card_number,
)
from rexpay_gateway.core.models import (
    AuthType,
    Card,
    CardPaymentOutput,
    Payment,
    PaymentStatus,
    ThreeDSChallenge,
)
from rexpay_gateway.core.retry import RetryExecutor
from rexpay_gateway.core.subaccount_selector import SubaccountMetrics, SubaccountSelector
from rexpay_gateway.integrations.rexpay_client import RexpayClient
from rexpay_gateway.integrations.schemas import (
    ChargeData,
    GatewayResponseBlob,
    GatewayResponseDetail,
)
from rexpay_gateway.monitoring.metrics import PaymentMetrics

logger = structlog.get_logger(__name__)


class PaymentOrchestrator:
    """
    Public entry point for card payments through Rexpay.

    The five operations are independent: lifecycle state lives in the
    provider references and envelopes the caller holds between calls.
    """

    name = "REXPAYIII"

    def __init__(
        self,
        settings: Settings,
        client: Optional[RexpayClient] = None,
        selector: Optional[SubaccountSelector] = None,
        retry_executor: Optional[RetryExecutor] = None,
        codec: Optional[EncryptionCodec] = None,
        metrics: Optional[PaymentMetrics] = None,
        merchant_id: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        """
        Initialize payment orchestrator.

        Args:
            settings: Gateway settings
            client: Optional gateway client
            selector: Optional subaccount selector (share one across
                orchestrators to pool metrics)
            retry_executor: Optional retry executor
            codec: Optional envelope codec
            metrics: Optional telemetry sink
            merchant_id: Merchant id used when building the default client
            api_key: Merchant API key used when building the default client
        """
        self.settings = settings
        self.metrics = metrics or PaymentMetrics()
        self.client = client or RexpayClient(settings, merchant_id=merchant_id, api_key=api_key)
        self.selector = selector or SubaccountSelector(settings.selection_config())
        self.retry_executor = retry_executor or RetryExecutor(
            settings.retry_policy(), metrics=self.metrics
        )
        self.codec = codec or EncryptionCodec()

        logger.info("payment_orchestrator_initialized", provider=self.name)

    @contextmanager
    def _observe(self, operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
        """
        Time an operation, record its outcome and convert failures.

        Yields a mutable context dict so the body can add correlation
        fields (such as the selected subaccount) as they become known.
        """
        started = time.perf_counter()
        try:
            yield context
        except Exception as exc:
            error = self._to_domain_error(operation, exc, **context)
            self.metrics.record_error(operation, error.kind.value, time.perf_counter() - started)
            logger.error("payment_operation_failed", **{"operation": operation, **error.to_log_fields()})
            if error is exc:
                raise
            raise error from exc
        else:
            self.metrics.record_success(operation, time.perf_counter() - started)

    def _to_domain_error(self, operation: str, exc: Exception, **context: Any) -> RexpayError:
        if isinstance(exc, RexpayError):
            exc.context.setdefault("operation", operation)
            for key, value in context.items():
                if value is not None:
                    exc.context.setdefault(key, value)
            return exc

        classification = self.retry_executor.classifier.classify(exc)
        error_cls = (
            InternalServerError
            if classification.kind == ErrorKind.GATEWAY_INTERNAL
            else PaymentError
        )
        return error_cls(
            f"Failed to {operation.replace('_', ' ')}: {self._describe(exc)}",
            kind=classification.kind,
            cause=exc,
            operation=operation,
            status_code=classification.status_code,
            **context,
        )

    @staticmethod
    def _describe(exc: Exception) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            try:
                body = exc.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("message"):
                return str(body["message"])
            return f"HTTP {exc.response.status_code}"
        return str(exc) or type(exc).__name__

    async def _call(self, operation_name: str, operation: Any) -> Any:
        return await self.retry_executor.execute(operation, operation_name=operation_name)

    def _record_outcome(self, subaccount_id: str, success: bool) -> None:
        self.selector.record_outcome(subaccount_id, success)
        metrics = self.selector.get_metrics(subaccount_id)
        if metrics is not None:
            self.metrics.set_subaccount_success_rate(subaccount_id, metrics.success_rate)

    async def _select_subaccount(self, payment: Payment) -> str:
        subaccounts = await self._call("list_subaccounts", self.client.list_subaccounts)
        eligible = [s for s in subaccounts if s.active and s.supports(payment.currency)]
        logger.debug(
            "subaccounts_received",
            received=len(subaccounts),
            eligible=len(eligible),
            currency=payment.currency,
        )
        if not eligible:
            raise NoHealthySubaccountError(
                f"No active subaccount supports {payment.currency}",
                reference=payment.reference,
            )

        seed_rates = {
            s.uuid: s.metrics.success_rate
            for s in eligible
            if s.metrics is not None and s.metrics.success_rate is not None
        }
        selected = self.selector.select_from([s.uuid for s in eligible], seed_rates=seed_rates)
        if selected is None:
            raise NoHealthySubaccountError("No subaccount available", reference=payment.reference)
        self.metrics.record_subaccount_selection(selected)
        return selected

    def _build_initialize_payload(
        self, payment: Payment, card: Card, subaccount_id: str
    ) -> Dict[str, Any]:
        customer = payment.customer
        ip_address = payment.request_details.ip_address or ""
        return {
            "amount": format_amount(payment.amount),
            "currency": payment.currency,
            "reference": payment.reference,
            "customer": {
                "email": customer.email,
                "first_name": customer.first_name,
                "last_name": customer.last_name,
                "phone": customer.phone_number,
            },
            "subaccount_id": subaccount_id,
            "callback_url": self.settings.callback_url,
            "metadata": {
                **payment.metadata,
                "customer_reference": payment.reference,
                "reference": payment.reference,
                "ip_address": ip_address,
            },
            "device_information": build_device_information(payment).model_dump(),
            "billing_information": build_billing_information(payment),
            "card": {
                "number": clean_card_number(card.number or ""),
                "expiry_month": card.expiry.month if card.expiry else "",
                "expiry_year": card.expiry.year if card.expiry else "",
                "cvv": card.security_code,
            },
        }

    def _seal_card(self, card: Card, subaccount_id: str) -> str:
        residue = card.model_dump(exclude={"encrypted"}, exclude_none=True)
        residue["subaccount_id"] = subaccount_id
        return self.codec.encrypt(
            json.dumps(residue),
            self.settings.rexpay_encryption_key,
            self.settings.rexpay_encryption_iv,
        )

    def _open_envelope(self, envelope: str) -> Dict[str, Any]:
        plaintext = self.codec.decrypt(
            envelope,
            self.settings.rexpay_encryption_key,
            self.settings.rexpay_encryption_iv,
        )
        try:
            residue = json.loads(plaintext)
        except ValueError as e:
            raise DecryptionError("Card envelope is not valid JSON", cause=e) from e
        if not isinstance(residue, dict):
            raise DecryptionError("Card envelope has an unexpected shape")
        return residue

    @staticmethod
    def _extract_challenge(data: ChargeData) -> Optional[ThreeDSChallenge]:
        auth = data.redirect_auth_data
        acs = auth.customized_html.three_ds2 if auth and auth.customized_html else None
        challenge = ThreeDSChallenge(
            acs_url=acs.acs_url if acs else None,
            creq=acs.creq if acs else None,
            redirect_url=data.redirect_url,
            html=auth.html if auth else None,
        )
        if not any(challenge.model_dump().values()):
            return None
        return challenge

    async def initialize_payment(
        self, payment: Payment, auth_type: AuthType = AuthType.THREE_DS_TWO
    ) -> CardPaymentOutput:
        """
        Open a gateway transaction for a card payment.

        Args:
            payment: Payment carrying raw card details
            auth_type: Requested cardholder authentication

        Returns:
            CardPaymentOutput: Mapped status, provider reference and the
                masked card carrying its encrypted envelope

        Raises:
            ValidationError: If the card details are missing
            PaymentError: If the gateway interaction fails
        """
        selected: Optional[str] = None
        settled = False

        with self._observe("initialize_payment", reference=payment.reference) as context:
            card = payment.card
            if card is None or not card.has_raw_details():
                raise ValidationError(
                    "Card details are required to initialize a payment",
                    reference=payment.reference,
                )

            try:
                selected = await self._select_subaccount(payment)
                context["subaccount_id"] = selected

                payload = self._build_initialize_payload(payment, card, selected)
                logger.info(
                    "payment_initialize_started",
                    reference=payment.reference,
                    amount=payment.amount,
                    currency=payment.currency,
                    subaccount_id=selected,
                )
                response = await self._call(
                    "initialize", lambda: self.client.initialize(payload)
                )

                status = map_gateway_status(response.data.status)
                self._record_outcome(selected, status != PaymentStatus.FAILED)
                settled = True

                envelope = self._seal_card(card, selected)
            except Exception:
                if selected is not None and not settled:
                    self._record_outcome(selected, False)
                raise

            transaction_id = response.data.transaction_id
            logger.info(
                "payment_initialized",
                reference=payment.reference,
                transaction_id=transaction_id,
                status=status.value,
                subaccount_id=selected,
            )
            return CardPaymentOutput(
                transaction_id=transaction_id,
                status=status,
                message=response.message or "Payment initialized",
                provider_reference=transaction_id,
                type=auth_type,
                card=Card(
                    number=mask_card_number(card.number),
                    expiry=card.expiry,
                    name=card.name,
                    brand=card.brand,
                    encrypted=envelope,
                ),
                provider_data={
                    "session_id": response.data.session_id or "",
                    "subaccount_id": selected,
                    "transaction_id": transaction_id,
                    "card": {"encrypted": envelope},
                },
            )

    async def authorize_payment(self, payment: Payment) -> CardPaymentOutput:
        """
        Charge an initialized payment.

        Args:
            payment: Payment whose card carries the envelope returned by
                initialize_payment and whose provider_reference is set

        Returns:
            CardPaymentOutput: Mapped status plus any 3-D-Secure challenge

        Raises:
            ValidationError: If the envelope or provider reference is missing
            DecryptionError: If the envelope cannot be opened
            PaymentError: If the gateway interaction fails
        """
        with self._observe(
            "authorize_payment",
            reference=payment.reference,
            provider_reference=payment.provider_reference,
        ) as context:
            card = payment.card
            if card is None or not card.encrypted:
                raise ValidationError(
                    "No encrypted card details found", reference=payment.reference
                )
            if not payment.provider_reference:
                raise ValidationError(
                    "Provider reference is required to authorize a payment",
                    reference=payment.reference,
                )

            residue = self._open_envelope(card.encrypted)
            subaccount_id = residue.get("subaccount_id")
            context["subaccount_id"] = subaccount_id

            payload = {
                "transaction_id": payment.provider_reference,
                "amount": format_amount(payment.amount),
                "currency": payment.currency,
                "subaccount_id": subaccount_id,
            }
            response = await self._call("charge", lambda: self.client.charge(payload))

            status = map_gateway_status(response.data.status)
            success = status != PaymentStatus.FAILED
            if subaccount_id:
                self._record_outcome(subaccount_id, success)
            self.metrics.record_authorization(success)

            challenge = self._extract_challenge(response.data)
            logger.info(
                "payment_authorized",
                reference=payment.reference,
                status=status.value,
                subaccount_id=subaccount_id,
                challenge_required=challenge is not None,
            )
            return CardPaymentOutput(
                transaction_id=response.data.reference or payment.reference,
                status=status,
                message=response.message or "Payment authorized",
                provider_reference=payment.provider_reference,
                challenge=challenge,
            )

    @staticmethod
    def _parse_gateway_response(blob: Optional[str]) -> GatewayResponseDetail:
        if not blob:
            return GatewayResponseDetail()
        try:
            return GatewayResponseBlob.model_validate_json(blob).response
        except SchemaValidationError as e:
            logger.warning("gateway_response_unparseable", error_count=e.error_count())
            return GatewayResponseDetail()

    async def retrieve_payment(self, payment_id: str) -> CardPaymentOutput:
        """
        Fetch the current status of a payment.

        A 404 from the gateway yields a FAILED result with the message
        ``Payment not found`` instead of an error.

        Args:
            payment_id: Provider reference of the payment

        Returns:
            CardPaymentOutput: Mapped status and any gateway detail
        """
        with self._observe("retrieve_payment", payment_id=payment_id):
            if not payment_id:
                raise ValidationError("Payment ID is required")

            try:
                response = await self._call(
                    "retrieve", lambda: self.client.retrieve(payment_id)
                )
            except httpx.HTTPStatusError as e:
                if e.response.status_code != 404:
                    raise
                logger.info("payment_not_found", payment_id=payment_id)
                return CardPaymentOutput(
                    transaction_id=payment_id,
                    status=PaymentStatus.FAILED,
                    message="Payment not found",
                )

            detail = self._parse_gateway_response(response.data.gateway_response)
            return CardPaymentOutput(
                transaction_id=payment_id,
                status=map_gateway_status(response.data.status),
                message=response.message or "Payment retrieved",
                provider_reference=payment_id,
                gateway_recommendation=detail.gateway_recommendation,
                gateway_code=detail.gateway_code,
                acquirer_message=detail.acquirer_message,
            )

    async def get_payment(self, payment: Payment) -> CardPaymentOutput:
        """Deprecated: use retrieve_payment."""
        logger.warning("get_payment_deprecated", reference=payment.reference)
        return await self.retrieve_payment(payment.provider_reference or payment.reference)

    async def finalize_payment(self, payment_id: str) -> CardPaymentOutput:
        """
        Settle a pending payment.

        Any response that is not an HTTP error counts as success; a
        failure status in the body is logged but does not change the
        result.

        Args:
            payment_id: Provider reference of the payment

        Returns:
            CardPaymentOutput: SUCCESS with the gateway's message
        """
        with self._observe("finalize_payment", payment_id=payment_id):
            if not payment_id:
                raise ValidationError("Payment ID is required")

            response = await self._call("finalize", lambda: self.client.finalize(payment_id))

            reported = response.status if isinstance(response.status, str) else None
            if reported is None and isinstance(response.data, dict):
                reported = response.data.get("status")
            if isinstance(reported, str) and map_gateway_status(reported) == PaymentStatus.FAILED:
                logger.warning(
                    "finalize_status_ignored", payment_id=payment_id, gateway_status=reported
                )

            message = response.message if isinstance(response.message, str) else None
            return CardPaymentOutput(
                transaction_id=payment_id,
                status=PaymentStatus.SUCCESS,
                message=message or "Payment finalized",
                provider_reference=payment_id,
            )

    async def refund_payment(self, payment: Payment) -> CardPaymentOutput:
        """
        Initiate a refund.

        Success follows the gateway's boolean status flag.

        Args:
            payment: Payment to refund (refund_amount defaults to amount)

        Returns:
            CardPaymentOutput: SUCCESS or FAILED with the gateway's message
        """
        with self._observe("refund_payment", reference=payment.reference):
            if not payment.reference:
                raise ValidationError("Payment reference is required for a refund")

            amount = payment.refund_amount if payment.refund_amount is not None else payment.amount
            payload: Dict[str, Any] = {
                "reference": payment.reference,
                "reason": payment.refund_reason or self.settings.default_refund_reason,
            }
            if amount:
                payload["amount"] = format_amount(amount)

            logger.info("refund_started", reference=payment.reference, amount=amount)
            response = await self._call("refund", lambda: self.client.refund(payload))

            status = PaymentStatus.SUCCESS if response.status else PaymentStatus.FAILED
            logger.info("refund_completed", reference=payment.reference, status=status.value)
            return CardPaymentOutput(
                transaction_id=response.data.reference or payment.reference,
                status=status,
                message=response.message or "Refund processed",
                provider_reference=payment.provider_reference,
            )

    def get_subaccount_metrics(self) -> List[SubaccountMetrics]:
        """Snapshot of per-subaccount metrics."""
        return self.selector.snapshot()

    def adjust_subaccount_metrics(self, subaccount_id: str, success_rate: float) -> None:
        """Manually override a subaccount's success rate (clamped to [0, 1])."""
        self.selector.adjust_success_rate(subaccount_id, success_rate)

    async def aclose(self) -> None:
        await self.client.aclose()
