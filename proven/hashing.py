"""
Proven Hashing

All content hashes are BLAKE2b with a 32-byte digest. The same function keys
whitelists, per-code secrets and the ``js_code_hash`` payload field; any
divergence would silently defeat the whitelist.

Hashes and account ids are rendered as ``0x`` followed by lowercase hex.
"""

import hashlib
from pathlib import Path
from typing import Iterable, Union

HASH_SIZE = 32
HEX_PREFIX = "0x"


def blake2_256(data: Union[bytes, str]) -> bytes:
    """Compute the 32-byte BLAKE2b digest of ``data`` (str is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.blake2b(data, digest_size=HASH_SIZE).digest()


def code_hash(code: Union[bytes, str]) -> bytes:
    """Hash script source for whitelisting and attestation."""
    return blake2_256(code)


def to_hex(raw: bytes) -> str:
    """Render raw bytes as ``0x``-prefixed lowercase hex."""
    return HEX_PREFIX + bytes(raw).hex()


def parse_hex(text: str) -> bytes:
    """Parse ``0x``-prefixed (or bare) hex into bytes."""
    if not isinstance(text, str):
        raise ValueError("hex value must be a string")
    value = text.strip()
    if value[:2].lower() == HEX_PREFIX:
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"invalid hex value: {text!r}") from None


def parse_hash(text: str) -> bytes:
    """
    Parse a hash or account id.

    Raises:
        ValueError: if the value is not hex or not exactly 32 bytes
    """
    raw = parse_hex(text)
    if len(raw) != HASH_SIZE:
        raise ValueError(f"expected {HASH_SIZE} bytes, got {len(raw)}")
    return raw


def _source_files(package_dir: Path, suffixes: Iterable[str]) -> list:
    suffixes = tuple(suffixes)
    return sorted(
        p for p in package_dir.rglob("*")
        if p.is_file() and p.suffix in suffixes and "__pycache__" not in p.parts
    )


def package_code_hash(package_dir: Union[str, Path], suffixes=(".py", ".js")) -> bytes:
    """
    Compute the code identity of a source tree.

    Each file contributes its POSIX relative path, a NUL byte, its length and
    its content, in sorted path order, so renames and edits both change the
    result.
    """
    package_dir = Path(package_dir)
    h = hashlib.blake2b(digest_size=HASH_SIZE)
    for path in _source_files(package_dir, suffixes):
        content = path.read_bytes()
        h.update(path.relative_to(package_dir).as_posix().encode("utf-8"))
        h.update(b"\x00")
        h.update(len(content).to_bytes(8, "big"))
        h.update(content)
    return h.digest()
