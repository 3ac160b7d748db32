"""
Proven Host Capabilities

The host is everything the prover trusts but does not implement: instance
metadata (own code hash, own address, block height), the driver registry that
names the active script engine, key derivation from the instance secret, and
outbound HTTP.

Implementations:
- InMemoryHost: explicit values, for tests and embedding
- ClockHost: block height follows the wall clock; loads its seed from a file
"""

import hashlib
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

from nacl.signing import SigningKey

from .errors import FetchError
from .hashing import HASH_SIZE
from .fetch import HttpResponse, RequestsFetcher
from .util import b64d

JS_DRIVER_NAME = "JsRuntime"

_DERIVE_PERSON = b"proven-derive"
_ADDRESS_PERSON = b"proven-address"


class Host(ABC):
    """Abstract interface for host-provided capabilities."""

    @abstractmethod
    def derive_key(self, label: bytes) -> SigningKey:
        """Derive an Ed25519 key for ``label``. Same label, same key."""
        pass

    @abstractmethod
    def own_code_hash(self) -> bytes:
        pass

    @abstractmethod
    def own_address(self) -> bytes:
        pass

    @abstractmethod
    def block_height(self) -> int:
        pass

    @abstractmethod
    def get_driver(self, name: str) -> Optional[bytes]:
        """Return the identity registered for driver ``name``, or None."""
        pass

    @abstractmethod
    def http_get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        pass


class InMemoryHost(Host):
    """
    Host holding all metadata in memory.

    The instance seed never leaves this object; derived keys are recomputed
    on every call.
    """

    def __init__(
        self,
        seed: bytes,
        code_hash: bytes,
        address: Optional[bytes] = None,
        block_number: int = 0,
        drivers: Optional[Dict[str, bytes]] = None,
        fetcher=None
    ):
        if len(seed) != 32:
            raise ValueError("instance seed must be 32 bytes")
        if len(code_hash) != HASH_SIZE:
            raise ValueError(f"code hash must be {HASH_SIZE} bytes")
        self._seed = bytes(seed)
        self._code_hash = bytes(code_hash)
        self._address = bytes(address) if address is not None else hashlib.blake2b(
            b"", digest_size=HASH_SIZE, key=self._seed, person=_ADDRESS_PERSON
        ).digest()
        self._block_number = int(block_number)
        self._drivers: Dict[str, bytes] = dict(drivers or {})
        self._fetcher = fetcher
        self._lock = threading.Lock()

    def derive_key(self, label: bytes) -> SigningKey:
        seed = hashlib.blake2b(
            bytes(label), digest_size=32, key=self._seed, person=_DERIVE_PERSON
        ).digest()
        return SigningKey(seed)

    def own_code_hash(self) -> bytes:
        return self._code_hash

    def own_address(self) -> bytes:
        return self._address

    def block_height(self) -> int:
        with self._lock:
            return self._block_number

    def set_block_number(self, block_number: int) -> None:
        with self._lock:
            self._block_number = int(block_number)

    def advance_block(self, count: int = 1) -> int:
        with self._lock:
            self._block_number += count
            return self._block_number

    def get_driver(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._drivers.get(name)

    def set_driver(self, name: str, identity: Optional[bytes]) -> None:
        """Register (or with None, remove) a driver identity."""
        with self._lock:
            if identity is None:
                self._drivers.pop(name, None)
            else:
                self._drivers[name] = bytes(identity)

    def http_get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        if self._fetcher is None:
            raise FetchError("host has no HTTP capability")
        return self._fetcher.get(url, headers)


class ClockHost(InMemoryHost):
    """Host whose block height is ``(now - genesis) // block_seconds``."""

    def __init__(self, *args, genesis_epoch: int = 0, block_seconds: int = 6, **kwargs):
        super().__init__(*args, **kwargs)
        if block_seconds <= 0:
            raise ValueError("block_seconds must be positive")
        self._genesis = int(genesis_epoch)
        self._block_seconds = int(block_seconds)

    def block_height(self) -> int:
        return max(0, int(time.time()) - self._genesis) // self._block_seconds

    @classmethod
    def from_seed_file(
        cls,
        seed_path: str,
        code_hash: bytes,
        genesis_epoch: int = 0,
        block_seconds: int = 6,
        fetch_timeout: float = 10.0
    ) -> "ClockHost":
        """Load ``{"seed_b64": ...}`` from ``seed_path`` and wire a requests fetcher."""
        with open(seed_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls(
            b64d(raw["seed_b64"]),
            code_hash,
            fetcher=RequestsFetcher(timeout=fetch_timeout),
            genesis_epoch=genesis_epoch,
            block_seconds=block_seconds,
        )
