"""HTTP client for the 1099 e-filing gateway."""

from collections.abc import Sequence
from typing import Any, cast

import httpx
import structlog

from rentledger.config import get_settings
from rentledger.errors import ExternalServiceError
from rentledger.tax_forms import FilingResult, Form1099

logger = structlog.get_logger(__name__)

SERVICE_NAME = "filing_gateway"


class HttpFilingGateway:
    """Async client that submits 1099 forms over HTTP.

    Failures are raised as ExternalServiceError; the client never retries,
    so a partially accepted batch is reported exactly as the gateway saw it.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        test_mode: bool = False,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.filing_gateway_url).rstrip("/")
        self._api_key = api_key or settings.filing_gateway_api_key.get_secret_value()
        self._timeout = timeout or settings.filing_gateway_timeout
        self._test_mode = test_mode
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpFilingGateway":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def submit(self, forms: Sequence[Form1099]) -> list[FilingResult]:
        """Submit forms and return one result per form."""
        client = await self._get_client()
        payload = {
            "test_mode": self._test_mode,
            "forms": [form.to_dict() for form in forms],
        }

        try:
            response = await client.post(
                "/api/v1/filings/1099",
                json=payload,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            raise ExternalServiceError(SERVICE_NAME, f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            raise ExternalServiceError(
                SERVICE_NAME,
                f"Gateway error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        try:
            data_raw = response.json()
        except ValueError as e:
            raise ExternalServiceError(SERVICE_NAME, "Invalid response body") from e
        if not isinstance(data_raw, dict):
            raise ExternalServiceError(SERVICE_NAME, "Invalid response format")
        data = cast(dict[str, Any], data_raw)

        results = [self._parse_result(item) for item in data.get("results", [])]
        logger.info(
            "filing_submitted",
            submission_id=data.get("submission_id"),
            forms=len(forms),
            accepted=sum(1 for r in results if r.accepted),
        )
        return results

    @staticmethod
    def _parse_result(item: dict[str, Any]) -> FilingResult:
        status = str(item.get("status", "")).upper()
        return FilingResult(
            vendor_id=str(item.get("vendor_id", "")),
            accepted=status == "ACCEPTED",
            confirmation_number=item.get("reference_number"),
            error=item.get("error"),
        )
