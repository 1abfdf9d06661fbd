"""
Wise API client with retry logic and error classification.

Implements:
- Bearer token authentication
- Exponential backoff for transient errors (network, 429, 5xx)
- Account details, recipient listing and quote creation
"""
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from payout_gateway.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class WiseErrorType(Enum):
    """Classification of Wise errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these


class WiseAPIError(Exception):
    """Raised when a Wise API call fails."""

    def __init__(
        self,
        message: str,
        error_type: WiseErrorType,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
        self.body = body

    @property
    def is_transient(self) -> bool:
        return self.error_type is WiseErrorType.TRANSIENT


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, WiseAPIError) and error.is_transient


class WiseClient:
    """
    Thin async wrapper over the Wise REST API.

    The underlying httpx client can be injected, which is how tests route
    requests to an httpx.MockTransport.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.profile_id = self.settings.wise_profile_id
        self._http = http_client or httpx.AsyncClient(
            base_url=self.settings.wise_api_url,
            timeout=self.settings.wise_timeout_seconds,
        )
        self._headers = {"Authorization": f"Bearer {self.settings.wise_api_key}"}

    @staticmethod
    def _classify_status(status_code: int) -> WiseErrorType:
        if status_code == 429 or status_code >= 500:
            return WiseErrorType.TRANSIENT
        return WiseErrorType.PERMANENT

    async def _send_once(
        self, operation: str, method: str, url: str, **kwargs: Any
    ) -> Any:
        try:
            response = await self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning("wise_api_transport_error", operation=operation, error=str(e))
            raise WiseAPIError(
                f"Wise API Error ({operation}): {e}", WiseErrorType.TRANSIENT
            ) from e

        if response.is_error:
            error_type = self._classify_status(response.status_code)
            logger.error(
                "wise_api_error",
                operation=operation,
                status_code=response.status_code,
                error_type=error_type.value,
                body=response.text,
            )
            raise WiseAPIError(
                f"Wise API Error ({operation}): {response.status_code} "
                f"{response.reason_phrase} - {response.text}",
                error_type,
                status_code=response.status_code,
                body=response.text,
            )

        return response.json()

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request, retrying transient failures with exponential backoff."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.settings.wise_retry_max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            reraise=True,
        ):
            with attempt:
                return await self._send_once(operation, method, url, **kwargs)

    async def fetch_account_details(self) -> Any:
        """Fetch the profile's account details."""
        data = await self._request(
            "Account Details", "GET", f"/v1/profiles/{self.profile_id}/account-details"
        )
        logger.info("wise_account_details_fetched", profile_id=self.profile_id)
        return data

    async def fetch_recipients(self, currency: str) -> Dict[str, Any]:
        """
        List recipient accounts of the profile for a payout currency.

        Returns:
            Dict[str, Any]: Wise response, recipients under "content"
        """
        data = await self._request(
            "Recipients",
            "GET",
            "/v2/accounts",
            params={"profile": self.profile_id, "currency": currency},
        )
        logger.info(
            "wise_recipients_fetched",
            currency=currency,
            count=len(data.get("content") or []),
        )
        return data

    async def get_quote(
        self,
        source_currency: str,
        target_currency: str,
        source_amount: float,
        target_account: int | str,
        profile_id: int | str | None = None,
    ) -> Dict[str, Any]:
        """
        Create a quote for paying source_amount out to target_account.

        Args:
            source_currency: Currency the sender pays in
            target_currency: Currency the recipient receives
            source_amount: Amount in source currency
            target_account: Wise recipient account ID
            profile_id: Profile to quote under (defaults to the configured one)

        Returns:
            Dict[str, Any]: Quote, including its "id"
        """
        profile = profile_id if profile_id is not None else self.profile_id
        body = {
            "sourceCurrency": source_currency,
            "targetCurrency": target_currency,
            "sourceAmount": source_amount,
            "targetAmount": None,
            "payOut": None,
            "preferredPayIn": None,
            "targetAccount": target_account,
            "paymentMetadata": {"transferNature": self.settings.wise_transfer_nature},
        }
        quote = await self._request(
            "Quote", "POST", f"/v3/profiles/{profile}/quotes", json=body
        )
        logger.info("wise_quote_received", quote_id=quote.get("id"), profile_id=profile)
        return quote

    async def close(self) -> None:
        await self._http.aclose()
