"""
Firebase Auth integration (Identity Toolkit REST API).
"""

from sprout.integrations.firebase.client import FirebaseIdentityClient
from sprout.integrations.firebase.exceptions import (
    FirebaseAuthError,
    FirebaseConnectionError,
    FirebaseInvalidCredentialError,
    FirebaseTimeoutError,
)

__all__ = [
    "FirebaseIdentityClient",
    "FirebaseAuthError",
    "FirebaseConnectionError",
    "FirebaseInvalidCredentialError",
    "FirebaseTimeoutError",
]
