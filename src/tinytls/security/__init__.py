"""
TLS support: credential loading and per-connection sessions.
"""

from .context import (
    Identity,
    TrustRoot,
    VerifyPolicy,
    REQUIRE_PEER_CERTIFICATE,
    SecurityContext,
    create_server_context,
    load_identity,
    load_trust_root,
)
from .session import SecureSession, SessionState

__all__ = [
    "Identity",
    "TrustRoot",
    "VerifyPolicy",
    "REQUIRE_PEER_CERTIFICATE",
    "SecurityContext",
    "create_server_context",
    "load_identity",
    "load_trust_root",
    "SecureSession",
    "SessionState",
]
