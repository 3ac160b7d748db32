"""
Proven Attestation Builder

Binds a script's output to everything a verifier needs to trust it:

    output               what the script returned
    js_code_hash         which script ran
    js_engine_code_hash  which engine ran it
    contract_code_hash   which verifier code attested it
    contract_address     which verifier instance attested it
    block_number         when

The payload is serialized once and the signature is made over exactly those
bytes. The serialized text, not the structured record, is what gets returned.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from .canonicalization import decode_record, encode_record
from .errors import HostError
from .hashing import parse_hash, to_hex
from .host import JS_DRIVER_NAME, Host
from .signing import KeyService

logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = (
    "output",
    "js_code_hash",
    "js_engine_code_hash",
    "contract_code_hash",
    "contract_address",
    "block_number",
)


@dataclass(frozen=True)
class ProvenPayload:
    """The record that gets signed."""
    output: str
    js_code_hash: bytes
    js_engine_code_hash: bytes
    contract_code_hash: bytes
    contract_address: bytes
    block_number: int

    def fields(self):
        return [
            ("output", self.output),
            ("js_code_hash", to_hex(self.js_code_hash)),
            ("js_engine_code_hash", to_hex(self.js_engine_code_hash)),
            ("contract_code_hash", to_hex(self.contract_code_hash)),
            ("contract_address", to_hex(self.contract_address)),
            ("block_number", int(self.block_number)),
        ]

    def to_json(self) -> str:
        return encode_record(self.fields())

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.fields())

    @classmethod
    def from_json(cls, text: str) -> "ProvenPayload":
        """
        Parse a serialized payload.

        Raises:
            ValueError: on missing or extra fields, bad hashes or a bad height
        """
        data = decode_record(text)
        if tuple(data.keys()) != PAYLOAD_FIELDS:
            raise ValueError(f"payload fields must be {PAYLOAD_FIELDS}, got {tuple(data.keys())}")
        block_number = data["block_number"]
        if not isinstance(block_number, int) or isinstance(block_number, bool) or block_number < 0:
            raise ValueError("block_number must be a non-negative integer")
        if not isinstance(data["output"], str):
            raise ValueError("output must be a string")
        return cls(
            output=data["output"],
            js_code_hash=parse_hash(data["js_code_hash"]),
            js_engine_code_hash=parse_hash(data["js_engine_code_hash"]),
            contract_code_hash=parse_hash(data["contract_code_hash"]),
            contract_address=parse_hash(data["contract_address"]),
            block_number=block_number,
        )


@dataclass(frozen=True)
class ProvenOutput:
    """Signed bundle returned to the caller."""
    payload: str
    signature: bytes
    pubkey: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payload": self.payload,
            "signature": to_hex(self.signature),
            "pubkey": to_hex(self.pubkey),
        }

    def decoded(self) -> ProvenPayload:
        return ProvenPayload.from_json(self.payload)


class AttestationBuilder:
    """Assembles, serializes and signs payloads for one instance."""

    def __init__(self, host: Host, keys: KeyService):
        self._host = host
        self._keys = keys

    def engine_identity(self) -> bytes:
        """
        Identity of the active script engine.

        Raises:
            HostError: if no engine is registered; an attestation without an
                engine binding is meaningless
        """
        engine = self._host.get_driver(JS_DRIVER_NAME)
        if engine is None:
            raise HostError(f"no {JS_DRIVER_NAME} driver is registered")
        return engine

    def build(self, output: str, js_code_hash: bytes) -> ProvenOutput:
        payload = ProvenPayload(
            output=output,
            js_code_hash=js_code_hash,
            js_engine_code_hash=self.engine_identity(),
            contract_code_hash=self._host.own_code_hash(),
            contract_address=self._host.own_address(),
            block_number=self._host.block_height(),
        )
        payload_str = payload.to_json()
        signature = self._keys.sign(payload_str.encode("utf-8"))
        logger.debug("attested %s at block %d", to_hex(js_code_hash), payload.block_number)
        return ProvenOutput(
            payload=payload_str,
            signature=signature,
            pubkey=self._keys.public_key(),
        )
