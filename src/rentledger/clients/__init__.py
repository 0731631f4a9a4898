"""Clients for external services."""

from rentledger.clients.filing_gateway import HttpFilingGateway

__all__ = ["HttpFilingGateway"]
