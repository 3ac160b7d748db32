"""
Proven Admin Surface

Owner-gated mutations of the instance state. Every operation:

1. takes the writer lock
2. checks the caller is the owner (Unauthorized otherwise)
3. checks the operation fits the active policy shape (BadConfig otherwise)
4. persists the new (owner, policy) through the store
5. publishes it

A failure at any step leaves the published state untouched.
"""

import logging
import threading
from typing import Optional, Tuple

from .errors import BadConfig, Unauthorized
from .hashing import HASH_SIZE, to_hex
from .policy import AccessPolicy, PerCodeSecretPolicy, PublicPolicy, WhitelistPolicy
from .store import StateStore
from .util import constant_time_compare

logger = logging.getLogger(__name__)


def _account(value: bytes, what: str) -> bytes:
    try:
        value = bytes(value)
    except TypeError as e:
        raise BadConfig(f"{what} must be {HASH_SIZE} bytes") from e
    if len(value) != HASH_SIZE:
        raise BadConfig(f"{what} must be {HASH_SIZE} bytes")
    return value


class ContractState:
    """
    Owner and policy of one instance.

    Readers get a consistent (owner, policy) snapshot; writers hold the lock
    across check, persist and publish.
    """

    def __init__(self, owner: bytes, policy: AccessPolicy, store: Optional[StateStore] = None):
        self._owner = _account(owner, "owner")
        self._policy = policy
        self._store = store
        self.lock = threading.RLock()

    def snapshot(self) -> Tuple[bytes, AccessPolicy]:
        with self.lock:
            return self._owner, self._policy

    @property
    def owner(self) -> bytes:
        return self.snapshot()[0]

    @property
    def policy(self) -> AccessPolicy:
        return self.snapshot()[1]

    def commit(self, owner: bytes, policy: AccessPolicy) -> None:
        """Persist then publish. Caller must hold ``lock``."""
        if self._store is not None:
            self._store.save(owner, policy)
        self._owner, self._policy = owner, policy


class AdminSurface:
    """Mutation operations, each restricted to the current owner."""

    def __init__(self, state: ContractState):
        self._state = state

    def _ensure_owner(self, caller: bytes) -> None:
        if not constant_time_compare(bytes(caller), self._state.owner):
            raise Unauthorized("caller is not the owner")

    def transfer_ownership(self, caller: bytes, new_owner: bytes) -> None:
        with self._state.lock:
            self._ensure_owner(caller)
            new_owner = _account(new_owner, "new owner")
            self._state.commit(new_owner, self._state.policy)
        logger.info("ownership transferred to %s", to_hex(new_owner))

    def update_config(self, caller: bytes, policy: AccessPolicy) -> None:
        with self._state.lock:
            self._ensure_owner(caller)
            if not isinstance(policy, (PublicPolicy, WhitelistPolicy, PerCodeSecretPolicy)):
                raise BadConfig(f"unsupported policy: {type(policy).__name__}")
            self._state.commit(self._state.owner, policy)
        logger.info("access policy replaced with %s", policy.type_name)

    def update_secret(self, caller: bytes, secret: str) -> None:
        with self._state.lock:
            self._ensure_owner(caller)
            policy = self._state.policy
            if not isinstance(policy, WhitelistPolicy):
                raise BadConfig("shared secret requires a whitelist policy")
            self._state.commit(self._state.owner, policy.with_secret(secret))

    def allow_code_hash(self, caller: bytes, code_hash: bytes) -> None:
        with self._state.lock:
            self._ensure_owner(caller)
            policy = self._state.policy
            if not isinstance(policy, WhitelistPolicy):
                raise BadConfig("allowing code requires a whitelist policy")
            code_hash = _account(code_hash, "code hash")
            if code_hash in policy.allowed_code_hashes:
                return
            self._state.commit(self._state.owner, policy.with_allowed(code_hash))
        logger.info("code hash %s whitelisted", to_hex(code_hash))

    def set_secret(self, caller: bytes, code_hash: bytes, secret: str) -> None:
        with self._state.lock:
            self._ensure_owner(caller)
            policy = self._state.policy
            if not isinstance(policy, PerCodeSecretPolicy):
                raise BadConfig("per-code secrets require a per_code_secret policy")
            code_hash = _account(code_hash, "code hash")
            self._state.commit(self._state.owner, policy.with_secret(code_hash, secret))
