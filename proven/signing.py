"""
Proven Identity & Key Service

Signing uses Ed25519 via PyNaCl. The signing key is never stored: it is
derived from the host on every use under a fixed domain-separation label, so
signing capability belongs to "being this instance" and nothing else.
"""

from typing import Union

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .hashing import code_hash
from .host import Host

# Label passed to the host's key derivation. Must not be reused for any
# other purpose.
SIGNER_KEY_LABEL = b"signer"


class KeyService:
    """
    Thin facade over the host's key and hash capabilities.

    Holds a reference to the host only; no key material is kept between
    calls.
    """

    def __init__(self, host: Host):
        self._host = host

    def derive_signing_key(self) -> SigningKey:
        """Derive the instance signing key. Repeatable, never cached."""
        return self._host.derive_key(SIGNER_KEY_LABEL)

    def public_key(self) -> bytes:
        """Return the 32-byte Ed25519 public key."""
        return bytes(self.derive_signing_key().verify_key)

    def hash_code(self, code: Union[bytes, str]) -> bytes:
        return code_hash(code)

    def sign(self, data: bytes) -> bytes:
        """Sign ``data`` and return the detached 64-byte signature."""
        return self.derive_signing_key().sign(data).signature


# Helpers for third-party verifiers. The prover itself never verifies.

def verify_signature(data: bytes, signature: bytes, verify_key: bytes) -> bool:
    """Verify an Ed25519 signature."""
    try:
        key = VerifyKey(bytes(verify_key))
        key.verify(data, bytes(signature))
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False


def verify_proven_output(output) -> bool:
    """Check ``output.signature`` over the payload bytes with ``output.pubkey``."""
    return verify_signature(output.payload.encode("utf-8"), output.signature, output.pubkey)
