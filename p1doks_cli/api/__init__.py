"""
P1Doks API Layer.

This package handles authentication and all communication with the P1Doks API.
"""

from .auth import CognitoIdentityProvider
from .client import P1doksAPIClient
from .rate_limiter import RequestPacer
from .session import CredentialTriple, SessionManager, SessionState

__all__ = [
    "CognitoIdentityProvider",
    "CredentialTriple",
    "P1doksAPIClient",
    "RequestPacer",
    "SessionManager",
    "SessionState",
]
