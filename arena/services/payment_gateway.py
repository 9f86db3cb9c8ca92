"""Payment gateway (LND-compatible REST) client for outbound payments"""

import asyncio
import aiohttp
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

from arena.config import Config
from arena.utils.exceptions import ExternalServiceError, PaymentDecodeError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

SERVICE_NAME = "Payment gateway"


@dataclass(frozen=True)
class DecodedPayment:
    amount: int
    payment_hash: str

    @classmethod
    def from_payload(cls, payload: Any) -> "DecodedPayment":
        if not isinstance(payload, dict):
            raise PaymentDecodeError("decode response is not an object")
        try:
            # int64 fields are serialized as strings
            amount = int(payload.get("num_satoshis", ""))
        except (TypeError, ValueError):
            raise PaymentDecodeError("decode response has no numeric amount")
        payment_hash = payload.get("payment_hash")
        if not isinstance(payment_hash, str) or not payment_hash:
            raise PaymentDecodeError("decode response has no payment hash")
        return cls(amount=amount, payment_hash=payment_hash)


@dataclass(frozen=True)
class PaymentResult:
    payment_hash: Optional[str] = None
    payment_preimage: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PaymentResult":
        if not isinstance(payload, dict):
            raise ExternalServiceError(SERVICE_NAME, "payment response is not an object")
        payment_error = payload.get("payment_error")
        if payment_error:
            raise ExternalServiceError(SERVICE_NAME, f"payment failed: {payment_error}")
        return cls(
            payment_hash=payload.get("payment_hash"),
            payment_preimage=payload.get("payment_preimage")
        )


class PaymentGateway:
    """Decodes and pays payment requests through a lightning node"""

    def __init__(self, base_url: Optional[str] = None, macaroon: Optional[str] = None,
                 verify_tls: Optional[bool] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or Config.PAYMENT_GATEWAY_URL).rstrip("/")
        self.macaroon = macaroon if macaroon is not None else Config.PAYMENT_GATEWAY_MACAROON
        self.verify_tls = verify_tls if verify_tls is not None else Config.PAYMENT_GATEWAY_VERIFY_TLS
        self.timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else Config.EXTERNAL_CALL_TIMEOUT_SECONDS
        )

    def _get_headers(self) -> Dict[str, str]:
        return {"Grpc-Metadata-macaroon": self.macaroon}

    async def decode(self, payment_request: str) -> DecodedPayment:
        """
        Decode a payment request.

        Raises:
            PaymentDecodeError: If the request is empty or rejected by the node
            ExternalServiceError: If the node cannot be reached or times out
        """
        if not payment_request:
            raise PaymentDecodeError("empty payment request")

        url = f"{self.base_url}/v1/payreq/{quote(payment_request, safe='')}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(
                    url, headers=self._get_headers(), ssl=None if self.verify_tls else False
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.warning(f"Payment request decode rejected: {response.status} - {error_text}")
                        raise PaymentDecodeError(f"HTTP {response.status}")
                    payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error(f"Network error connecting to payment gateway: {e}")
            raise ExternalServiceError(SERVICE_NAME, f"network error: {e}")
        except asyncio.TimeoutError:
            logger.error("Payment request decode timed out")
            raise ExternalServiceError(SERVICE_NAME, "decode timed out")
        except ValueError as e:
            logger.error(f"Payment gateway returned invalid JSON on decode: {e}")
            raise PaymentDecodeError("invalid JSON response")

        return DecodedPayment.from_payload(payload)

    async def pay(self, payment_request: str) -> PaymentResult:
        """
        Pay a payment request synchronously.

        Raises:
            ExternalServiceError: If the node reports an error or cannot be reached
        """
        url = f"{self.base_url}/v1/channels/transactions"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    url,
                    json={"payment_request": payment_request},
                    headers=self._get_headers(),
                    ssl=None if self.verify_tls else False
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Payment gateway error: {response.status} - {error_text}")
                        raise ExternalServiceError(SERVICE_NAME, f"HTTP {response.status}")
                    payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error(f"Network error connecting to payment gateway: {e}")
            raise ExternalServiceError(SERVICE_NAME, f"network error: {e}")
        except asyncio.TimeoutError:
            # The node may still complete this payment
            logger.error("Payment request timed out; outcome unknown")
            raise ExternalServiceError(SERVICE_NAME, "payment timed out")
        except ValueError as e:
            logger.error(f"Payment gateway returned invalid JSON on pay: {e}")
            raise ExternalServiceError(SERVICE_NAME, "invalid JSON response")

        return PaymentResult.from_payload(payload)
