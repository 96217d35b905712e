"""Provider gateways: the contract and its Gmail and in-memory implementations."""

from inbox_triage.gateway.base import ProviderGateway, build_candidates
from inbox_triage.gateway.gmail import GmailGateway
from inbox_triage.gateway.memory import InMemoryGateway

__all__ = ["GmailGateway", "InMemoryGateway", "ProviderGateway", "build_candidates"]
