"""
Certificate Registry Client Module

Resilient access to the certificate registry: error classification, bounded
read retries, cost buffering and the verification façade.
"""

from .config import ClientConfig
from .context import AccountProvider, LedgerContext, StaticAccountProvider, open_context
from .errors import ClientError, ErrorKind, classify_error
from .registry_client import ClientResponse, RegistryClient, calculate_cost_with_buffer
from .retry import retry_call
from .verification import CertificateVerifier, VerificationResult

__all__ = [
    "ClientConfig",
    "AccountProvider",
    "LedgerContext",
    "StaticAccountProvider",
    "open_context",
    "ClientError",
    "ErrorKind",
    "classify_error",
    "ClientResponse",
    "RegistryClient",
    "calculate_cost_with_buffer",
    "retry_call",
    "CertificateVerifier",
    "VerificationResult"
]
