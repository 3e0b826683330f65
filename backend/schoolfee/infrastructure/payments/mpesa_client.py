import base64
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx

from schoolfee.application.errors import PaymentInitiationError
from schoolfee.config import settings
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)

MPESA_BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}
CALLBACK_PATH = "/api/v1/billing/mpesa/callback"


@dataclass(frozen=True)
class StkPushResult:
    merchant_request_id: str | None
    checkout_request_id: str | None
    response_code: str | None
    customer_message: str | None


class MpesaClient:
    """Thin wrapper around the Daraja OAuth and STK push endpoints.

    Credentials come from settings; pass `transport` to run against an
    `httpx.MockTransport`.
    """

    def __init__(
        self,
        *,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        passkey: str | None = None,
        shortcode: str | None = None,
        environment: str | None = None,
        callback_base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._consumer_key = consumer_key or settings.mpesa_consumer_key
        self._consumer_secret = consumer_secret or settings.mpesa_consumer_secret
        self._passkey = passkey or settings.mpesa_passkey
        self._shortcode = shortcode or settings.mpesa_shortcode
        env = environment or settings.mpesa_env
        self._base_url = MPESA_BASE_URLS.get(env, MPESA_BASE_URLS["sandbox"])
        self._callback_base_url = (callback_base_url or settings.mpesa_callback_base_url or "").rstrip("/")
        self._timeout = timeout if timeout is not None else settings.mpesa_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return all([self._consumer_key, self._consumer_secret, self._passkey, self._shortcode])

    @property
    def callback_url(self) -> str:
        return f"{self._callback_base_url}{CALLBACK_PATH}"

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    def _fetch_access_token(self, client: httpx.Client) -> str:
        credentials = base64.b64encode(f"{self._consumer_key}:{self._consumer_secret}".encode()).decode()
        response = client.get(
            "/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {credentials}"},
        )
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            raise PaymentInitiationError("Payment provider did not return an access token")
        return str(token)

    def build_password(self, timestamp: str) -> str:
        return base64.b64encode(f"{self._shortcode}{self._passkey}{timestamp}".encode()).decode()

    def stk_push(
        self,
        *,
        phone: str,
        amount: Decimal,
        account_reference: str,
        description: str,
        now: datetime,
    ) -> StkPushResult:
        if not self.is_configured:
            raise PaymentInitiationError("M-PESA credentials not configured")

        timestamp = now.strftime("%Y%m%d%H%M%S")
        payload: dict[str, Any] = {
            "BusinessShortCode": self._shortcode,
            "Password": self.build_password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            "PartyA": phone,
            "PartyB": self._shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }
        try:
            with self._client() as client:
                token = self._fetch_access_token(client)
                response = client.post(
                    "/mpesa/stkpush/v1/processrequest",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.warning("mpesa_stk_push_failed", account_reference=account_reference, error=str(exc))
            raise PaymentInitiationError("Payment provider request failed") from exc

        if str(data.get("ResponseCode", "0")) != "0":
            logger.warning(
                "mpesa_stk_push_rejected",
                account_reference=account_reference,
                response_code=data.get("ResponseCode"),
            )
            raise PaymentInitiationError(data.get("ResponseDescription") or "Payment provider rejected the request")

        return StkPushResult(
            merchant_request_id=data.get("MerchantRequestID"),
            checkout_request_id=data.get("CheckoutRequestID"),
            response_code=str(data.get("ResponseCode")) if data.get("ResponseCode") is not None else None,
            customer_message=data.get("CustomerMessage"),
        )


def get_mpesa_client() -> MpesaClient:
    return MpesaClient()
