from .models import AnonymousIdentity, Identity, UserIdentity, is_anonymous
from .resolver import IdentityResolver
from .verifier import HttpSessionVerifier, SessionVerifier, SessionVerificationError

__all__ = [
    "AnonymousIdentity",
    "Identity",
    "UserIdentity",
    "is_anonymous",
    "IdentityResolver",
    "HttpSessionVerifier",
    "SessionVerifier",
    "SessionVerificationError",
]
