"""
Proven Access Policy

Decides which code may run and which secret it sees. Exactly one of three
shapes is active at a time:

    PublicPolicy          anyone's code runs, no secret
    WhitelistPolicy       only listed code hashes run; one shared secret
    PerCodeSecretPolicy   anyone's code runs; each code hash may have its own
                          secret (default empty)

Policies are immutable values. Every consumer below matches all three shapes
and raises TypeError on anything else, so a new shape cannot slip through
unnoticed.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

from .errors import Unauthorized
from .hashing import parse_hash, to_hex


@dataclass(frozen=True)
class PublicPolicy:
    type_name = "public"


@dataclass(frozen=True)
class WhitelistPolicy:
    secret: str = ""
    allowed_code_hashes: FrozenSet[bytes] = frozenset()

    type_name = "whitelist"

    def __post_init__(self):
        object.__setattr__(self, "allowed_code_hashes", frozenset(self.allowed_code_hashes))

    def with_secret(self, secret: str) -> "WhitelistPolicy":
        return WhitelistPolicy(secret=secret, allowed_code_hashes=self.allowed_code_hashes)

    def with_allowed(self, code_hash: bytes) -> "WhitelistPolicy":
        return WhitelistPolicy(
            secret=self.secret,
            allowed_code_hashes=self.allowed_code_hashes | {bytes(code_hash)},
        )


@dataclass(frozen=True)
class PerCodeSecretPolicy:
    secrets: Mapping[bytes, str] = field(default_factory=dict)

    type_name = "per_code_secret"

    def __post_init__(self):
        object.__setattr__(self, "secrets", MappingProxyType(dict(self.secrets)))

    def __hash__(self):
        return hash(frozenset(self.secrets.items()))

    def with_secret(self, code_hash: bytes, secret: str) -> "PerCodeSecretPolicy":
        updated = dict(self.secrets)
        updated[bytes(code_hash)] = secret
        return PerCodeSecretPolicy(secrets=updated)


AccessPolicy = Union[PublicPolicy, WhitelistPolicy, PerCodeSecretPolicy]


def _unknown(policy) -> TypeError:
    return TypeError(f"Unknown access policy: {type(policy).__name__}")


def check_allowed(policy: AccessPolicy, code_hash: bytes) -> None:
    """
    Gate execution of ``code_hash``.

    Raises:
        Unauthorized: if the policy is a whitelist without this hash
    """
    if isinstance(policy, PublicPolicy):
        return
    if isinstance(policy, WhitelistPolicy):
        if bytes(code_hash) not in policy.allowed_code_hashes:
            raise Unauthorized(f"code hash {to_hex(code_hash)} is not whitelisted")
        return
    if isinstance(policy, PerCodeSecretPolicy):
        return
    raise _unknown(policy)


def resolve_secret(policy: AccessPolicy, code_hash: bytes, explicit: Optional[str] = None) -> str:
    """Pick the secret injected for ``code_hash``. An explicit secret always wins."""
    if explicit is not None:
        return explicit
    if isinstance(policy, PublicPolicy):
        return ""
    if isinstance(policy, WhitelistPolicy):
        return policy.secret
    if isinstance(policy, PerCodeSecretPolicy):
        return policy.secrets.get(bytes(code_hash), "")
    raise _unknown(policy)


def redact_for(policy: AccessPolicy, caller: bytes, owner: bytes) -> AccessPolicy:
    """Return ``policy`` as ``caller`` may see it. Secrets are for the owner only."""
    if bytes(caller) == bytes(owner):
        return policy
    if isinstance(policy, PublicPolicy):
        return policy
    if isinstance(policy, WhitelistPolicy):
        return policy.with_secret("")
    if isinstance(policy, PerCodeSecretPolicy):
        return PerCodeSecretPolicy()
    raise _unknown(policy)


# ============================================================
# Serialization
# ============================================================

def policy_to_dict(policy: AccessPolicy) -> Dict[str, Any]:
    if isinstance(policy, PublicPolicy):
        return {"type": PublicPolicy.type_name}
    if isinstance(policy, WhitelistPolicy):
        return {
            "type": WhitelistPolicy.type_name,
            "secret": policy.secret,
            "allowed_code_hashes": sorted(to_hex(h) for h in policy.allowed_code_hashes),
        }
    if isinstance(policy, PerCodeSecretPolicy):
        return {
            "type": PerCodeSecretPolicy.type_name,
            "secrets": {to_hex(h): s for h, s in sorted(policy.secrets.items())},
        }
    raise _unknown(policy)


def _hashes(values: Iterable[str]) -> FrozenSet[bytes]:
    return frozenset(parse_hash(v) for v in values)


def policy_from_dict(data: Mapping[str, Any]) -> AccessPolicy:
    """
    Build a policy from its tagged dict form.

    Raises:
        ValueError: on an unknown type tag or malformed hashes
    """
    kind = data.get("type")
    if kind == PublicPolicy.type_name:
        return PublicPolicy()
    if kind == WhitelistPolicy.type_name:
        secret = data.get("secret") or ""
        if not isinstance(secret, str):
            raise ValueError("whitelist secret must be a string")
        return WhitelistPolicy(
            secret=secret,
            allowed_code_hashes=_hashes(data.get("allowed_code_hashes") or []),
        )
    if kind == PerCodeSecretPolicy.type_name:
        secrets = data.get("secrets") or {}
        if not all(isinstance(s, str) for s in secrets.values()):
            raise ValueError("per-code secrets must be strings")
        return PerCodeSecretPolicy(secrets={parse_hash(h): s for h, s in secrets.items()})
    raise ValueError(f"Unknown policy type: {kind!r}")
