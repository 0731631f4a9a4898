"""Tests for the HTTP filing gateway client."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from rentledger.clients.filing_gateway import HttpFilingGateway
from rentledger.errors import ExternalServiceError
from rentledger.tax_forms import Form1099


@pytest.fixture
def gateway():
    return HttpFilingGateway(base_url="http://filing.test", api_key="secret-key")


@pytest.fixture
def forms():
    return [
        Form1099(
            year=2023,
            vendor_id="v1",
            payer_name="Test Property Co",
            payer_tin="12-3456789",
            recipient_name="Ace Plumbing",
            recipient_tin="11-1111111",
            box1=Decimal("700"),
        ),
        Form1099(
            year=2023,
            vendor_id="v3",
            payer_name="Test Property Co",
            payer_tin="12-3456789",
            recipient_name="Small Jobs LLC",
            recipient_tin="33-3333333",
            box1=Decimal("650.25"),
        ),
    ]


def _response(status_code, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"{}" if payload is not None else b""
    response.text = ""
    response.json.return_value = payload
    return response


class TestHttpFilingGatewayInit:
    """Tests for HttpFilingGateway initialization."""

    def test_init_strips_trailing_slash(self):
        """Test that trailing slash is stripped from base URL."""
        gateway = HttpFilingGateway(base_url="http://filing.test/")
        assert gateway.base_url == "http://filing.test"

    def test_defaults_from_settings(self):
        """Test that unset options come from settings."""
        gateway = HttpFilingGateway()
        assert gateway.base_url == "http://localhost:8100"

    def test_bearer_header_only_with_key(self):
        """Test that the Authorization header depends on the api key."""
        assert HttpFilingGateway(api_key="k")._get_headers()["Authorization"] == "Bearer k"
        assert "Authorization" not in HttpFilingGateway(api_key="")._get_headers()


class TestSubmit:
    """Tests for submit."""

    @pytest.mark.asyncio
    async def test_submit_parses_results(self, gateway, forms):
        """Test accepted and rejected results from the gateway."""
        payload = {
            "submission_id": "sub-1",
            "results": [
                {"vendor_id": "v1", "status": "ACCEPTED", "reference_number": "REF-1"},
                {"vendor_id": "v3", "status": "REJECTED", "error": "TIN mismatch"},
            ],
        }

        with patch.object(gateway, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=_response(200, payload))
            mock_get.return_value = mock_http

            results = await gateway.submit(forms)

            call = mock_http.post.call_args
            assert call.args[0] == "/api/v1/filings/1099"
            assert call.kwargs["json"]["forms"][1]["box1"] == "650.25"
            assert call.kwargs["headers"]["Authorization"] == "Bearer secret-key"

        assert results[0].accepted
        assert results[0].confirmation_number == "REF-1"
        assert not results[1].accepted
        assert results[1].error == "TIN mismatch"

    @pytest.mark.asyncio
    async def test_http_error_status(self, gateway, forms):
        """Test that a 4xx/5xx response raises ExternalServiceError."""
        with patch.object(gateway, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(
                return_value=_response(503, {"detail": "maintenance window"})
            )
            mock_get.return_value = mock_http

            with pytest.raises(ExternalServiceError) as exc_info:
                await gateway.submit(forms)

        assert exc_info.value.status_code == 503
        assert exc_info.value.details == {"detail": "maintenance window"}

    @pytest.mark.asyncio
    async def test_transport_error(self, gateway, forms):
        """Test that connection failures raise ExternalServiceError."""
        with patch.object(gateway, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_get.return_value = mock_http

            with pytest.raises(ExternalServiceError) as exc_info:
                await gateway.submit(forms)

        assert exc_info.value.service == "filing_gateway"
        mock_http.post.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_response_format(self, gateway, forms):
        """Test that a non-object body is rejected."""
        with patch.object(gateway, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=_response(200, ["unexpected"]))
            mock_get.return_value = mock_http

            with pytest.raises(ExternalServiceError):
                await gateway.submit(forms)


class TestLifecycle:
    """Tests for client lifecycle."""

    @pytest.mark.asyncio
    async def test_close(self, gateway, mock_httpx_client):
        """Test that close releases the HTTP client."""
        gateway._client = mock_httpx_client

        await gateway.close()

        mock_httpx_client.aclose.assert_awaited_once()
        assert gateway._client is None

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, mock_httpx_client):
        """Test that leaving the context closes the client."""
        async with HttpFilingGateway(base_url="http://filing.test") as gateway:
            gateway._client = mock_httpx_client

        mock_httpx_client.aclose.assert_awaited_once()
