"""
HTTP Client for the PayOS payment-link API with retry logic
"""
import hashlib
import hmac
import json
import logging

import httpx
from typing import Dict, Optional
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.config import settings
from app.schemas.payment import PaymentInfo, PaymentLink, PaymentTransaction

logger = logging.getLogger(__name__)

SUCCESS_CODE = "00"


class PaymentProviderError(Exception):
    """Base exception for PayOS errors"""
    pass


class PaymentProviderUnavailableError(PaymentProviderError):
    """PayOS could not be reached"""
    pass


class PaymentNotFoundError(PaymentProviderError):
    """PayOS has no payment link for the order code"""
    pass


def _hmac_sha256(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def _webhook_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


class PayOSClient:
    """Client for creating and querying PayOS payment links"""

    def __init__(
        self,
        client_id: Optional[str] = None,
        api_key: Optional[str] = None,
        checksum_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.PAYOS_CLIENT_ID
        self.api_key = api_key if api_key is not None else settings.PAYOS_API_KEY
        self.checksum_key = checksum_key if checksum_key is not None else settings.PAYOS_CHECKSUM_KEY
        self.base_url = (base_url or settings.PAYOS_API_URL).rstrip("/")
        self.timeout = settings.PAYOS_TIMEOUT
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "x-client-id": self.client_id,
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def sign_payment_request(
        self, amount: int, cancel_url: str, description: str, order_code: int, return_url: str
    ) -> str:
        """Signature over the payment request fields in alphabetical order"""
        data = (
            f"amount={amount}&cancelUrl={cancel_url}&description={description}"
            f"&orderCode={order_code}&returnUrl={return_url}"
        )
        return _hmac_sha256(self.checksum_key, data)

    def verify_webhook_data(self, data: Dict, signature: str) -> bool:
        """Check a webhook payload signature (sorted key=value pairs joined by '&')"""
        if not signature:
            return False
        message = "&".join(f"{key}={_webhook_value(data[key])}" for key in sorted(data))
        return hmac.compare_digest(_hmac_sha256(self.checksum_key, message), signature)

    # Connect errors never reach PayOS, so creating a link is only retried on those
    @retry(
        stop=stop_after_attempt(settings.MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=1, max=10),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True
    )
    async def _post(self, path: str, body: Dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(f"{self.base_url}{path}", json=body, headers=self._headers())

    @retry(
        stop=stop_after_attempt(settings.MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        reraise=True
    )
    async def _get(self, path: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.get(f"{self.base_url}{path}", headers=self._headers())

    @staticmethod
    def _unwrap(response: httpx.Response) -> Dict:
        """Return the `data` object of a PayOS envelope or raise"""
        if response.status_code == 404:
            raise PaymentNotFoundError("Payment link not found")
        if response.status_code >= 500:
            raise PaymentProviderUnavailableError(f"PayOS returned status {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            raise PaymentProviderError(f"PayOS returned a non-JSON response (status {response.status_code})")
        if not isinstance(payload, dict):
            raise PaymentProviderError("PayOS returned an unexpected response envelope")

        if response.status_code != 200 or payload.get("code") != SUCCESS_CODE:
            raise PaymentProviderError(
                f"PayOS error {payload.get('code')}: {payload.get('desc', 'unknown error')}"
            )
        data = payload.get("data")
        if not data:
            raise PaymentNotFoundError("PayOS response carried no data")
        if not isinstance(data, dict):
            raise PaymentProviderError("PayOS response data is not an object")
        return data

    async def create_payment_link(
        self,
        order_id: str,
        amount: int,
        order_code: int,
        description: Optional[str] = None,
    ) -> PaymentLink:
        """
        Create a hosted checkout for an order

        Args:
            order_id: Internal order ID
            amount: Amount in the provider currency (integer)
            order_code: Numeric provider order code
            description: Short transfer description

        Returns:
            Checkout URL, QR code and payment link id

        Raises:
            PaymentProviderUnavailableError: If PayOS is unreachable
            PaymentProviderError: If PayOS rejects the request or the reply is incomplete
        """
        description = (description or f"Order {order_id[-8:].upper()}")[:25]
        body = {
            "orderCode": order_code,
            "amount": amount,
            "description": description,
            "cancelUrl": settings.PAYOS_CANCEL_URL,
            "returnUrl": settings.PAYOS_RETURN_URL,
        }
        body["signature"] = self.sign_payment_request(
            amount, body["cancelUrl"], description, order_code, body["returnUrl"]
        )

        try:
            response = await self._post("/v2/payment-requests", body)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.error(f"✗ Error calling PayOS: {e}")
            raise PaymentProviderUnavailableError(f"PayOS unavailable: {e}")

        data = self._unwrap(response)
        try:
            link = PaymentLink(
                checkout_url=data["checkoutUrl"],
                qr_code=data.get("qrCode"),
                payment_link_id=data["paymentLinkId"],
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise PaymentProviderError(f"PayOS returned an incomplete payment link: {e}")
        logger.info(f"✓ Payment link created for order {order_id} (code: {order_code})")
        return link

    async def get_payment_info(self, order_code: int) -> PaymentInfo:
        """
        Get live payment status by provider order code

        Raises:
            PaymentNotFoundError: If PayOS does not know the code
            PaymentProviderUnavailableError: If PayOS is unreachable
            PaymentProviderError: If PayOS rejects the request or the reply is incomplete
        """
        try:
            response = await self._get(f"/v2/payment-requests/{order_code}")
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.error(f"✗ Error calling PayOS: {e}")
            raise PaymentProviderUnavailableError(f"PayOS unavailable: {e}")

        data = self._unwrap(response)
        try:
            return PaymentInfo(
                id=data.get("id"),
                order_code=data["orderCode"],
                amount=data.get("amount", 0),
                amount_paid=data.get("amountPaid", 0),
                amount_remaining=data.get("amountRemaining", 0),
                status=data["status"],
                created_at=data.get("createdAt"),
                transactions=[
                    PaymentTransaction(
                        amount=tx.get("amount", 0),
                        description=tx.get("description"),
                        account_number=tx.get("accountNumber"),
                        reference=tx.get("reference"),
                        transaction_date_time=tx.get("transactionDateTime"),
                    )
                    for tx in data.get("transactions") or []
                ],
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise PaymentProviderError(f"PayOS returned incomplete payment info for code {order_code}: {e}")
