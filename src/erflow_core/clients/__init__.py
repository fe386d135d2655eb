"""Clients for the external assessment gateway."""

from erflow_core.clients.base import BaseServiceClient
from erflow_core.clients.gateway import AssessmentGateway
from erflow_core.clients.assessment_client import AssessmentGatewayClient

__all__ = [
    "AssessmentGateway",
    "AssessmentGatewayClient",
    "BaseServiceClient",
]
