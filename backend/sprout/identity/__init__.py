"""
Identity: anonymous sessions, credential linking and the identity-change stream.
"""

from sprout.identity.errors import (
    CredentialConflictError,
    IdentityError,
    IdentityLinkError,
    IdentityProviderError,
    NoCurrentIdentityError,
)
from sprout.identity.linker import IdentityLinker
from sprout.identity.models import Credential, Identity, OperationType, UserCredential
from sprout.identity.provider import IdentityProvider
from sprout.identity.stream import IdentityStateStream

__all__ = [
    "CredentialConflictError",
    "IdentityError",
    "IdentityLinkError",
    "IdentityProviderError",
    "NoCurrentIdentityError",
    "IdentityLinker",
    "Credential",
    "Identity",
    "OperationType",
    "UserCredential",
    "IdentityProvider",
    "IdentityStateStream",
]
