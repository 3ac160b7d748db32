"""
Proven Script Interpreter

An interpreter accepts a list of source fragments plus string arguments and
runs them as one unit: all fragments share a single global scope, and the
value produced by the last one is returned as a tagged JsValue.

NodeInterpreter runs the bundled harness (``runtime/harness.js``) in a
``node`` subprocess. The harness exposes the globals scripts rely on:
``scriptArgs``, ``scriptOutput``, ``Sidevm.exit`` and ``Sidevm.inspect``, plus
``console``, ``fetch``, ``setTimeout`` and a UTF-8 ``TextEncoder``/``TextDecoder``.
All of them are built inside the script context; no host object is reachable.
"""

import json
import logging
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from .errors import InterpreterFault
from .hashing import blake2_256

logger = logging.getLogger(__name__)

HARNESS_PATH = Path(__file__).parent / "runtime" / "harness.js"

JS_KINDS = ("string", "number", "bool", "null", "undefined", "bytes", "exception", "other")


@dataclass(frozen=True)
class JsValue:
    """Tagged value returned by an interpreter."""
    kind: str
    value: Any = None

    def is_string(self) -> bool:
        return self.kind == "string" and isinstance(self.value, str)

    @classmethod
    def string(cls, value: str) -> "JsValue":
        return cls("string", value)

    @classmethod
    def from_dict(cls, data: dict) -> "JsValue":
        kind = data.get("kind")
        if kind not in JS_KINDS:
            raise InterpreterFault(f"unknown value kind: {kind!r}")
        return cls(kind, data.get("value"))

    def __repr__(self) -> str:
        if self.kind in ("null", "undefined"):
            return self.kind.capitalize()
        return f"{self.kind.capitalize()}({self.value!r})"


class Interpreter(ABC):
    """Abstract script execution driver."""

    @abstractmethod
    def execute(self, fragments: Sequence[str], args: Sequence[str]) -> JsValue:
        """
        Run ``fragments`` in order in one shared scope.

        Raises:
            InterpreterFault: if the driver could not complete execution
        """
        pass

    @abstractmethod
    def identity(self) -> bytes:
        """Stable 32-byte identity of this engine build."""
        pass


class NodeInterpreter(Interpreter):
    """
    Node.js subprocess driver.

    Each call spawns a fresh process, so no state survives between calls.
    The process gets an empty environment, a throwaway working directory
    and, where the node build supports it, the permission model with read
    access to the harness only.
    """

    # Tried in order; the first set node accepts is used.
    PERMISSION_FLAGS = (
        ("--permission", "--allow-net"),
        ("--permission",),
        ("--experimental-permission",),
    )

    def __init__(self, node_binary: str = "node", timeout: float = 30.0):
        # Resolved up front since the child runs without PATH.
        self._node = shutil.which(node_binary) or node_binary
        self._timeout = timeout
        self._identity: Optional[bytes] = None
        self._flags: Optional[Tuple[str, ...]] = None

    def _command(self, *extra: str) -> List[str]:
        return [self._node, *self.sandbox_flags(), *extra]

    def sandbox_flags(self) -> Tuple[str, ...]:
        """Permission flags accepted by this node binary, checked once."""
        if self._flags is None:
            allow_read = f"--allow-fs-read={HARNESS_PATH}"
            chosen: Tuple[str, ...] = ()
            for flags in self.PERMISSION_FLAGS:
                try:
                    trial = subprocess.run(
                        [self._node, *flags, allow_read, "-e", "0"],
                        capture_output=True, env={}, timeout=10
                    )
                except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                    raise InterpreterFault(f"cannot start node: {e}") from e
                if trial.returncode == 0:
                    chosen = flags + (allow_read,)
                    break
            else:
                logger.warning("node %s has no permission model, relying on context isolation", self._node)
            self._flags = chosen
        return self._flags

    def execute(self, fragments: Sequence[str], args: Sequence[str]) -> JsValue:
        request = json.dumps({
            "fragments": list(fragments),
            "args": list(args),
            "timeout_ms": int(self._timeout * 1000),
        })
        try:
            command = self._command(str(HARNESS_PATH))
            with tempfile.TemporaryDirectory(prefix="proven-js-") as workdir:
                proc = subprocess.run(
                    command,
                    input=request,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    cwd=workdir,
                    env={},
                    timeout=self._timeout + 5,
                )
        except FileNotFoundError as e:
            raise InterpreterFault(f"node binary not found: {self._node}") from e
        except subprocess.TimeoutExpired as e:
            raise InterpreterFault(f"script timed out after {self._timeout}s") from e

        if proc.stderr:
            logger.debug("harness stderr: %s", proc.stderr.strip()[:2000])
        if proc.returncode != 0:
            raise InterpreterFault(
                f"harness exited with status {proc.returncode}: {proc.stderr.strip()[:500]}"
            )
        lines = proc.stdout.strip().splitlines()
        if not lines:
            raise InterpreterFault("harness produced no result")
        try:
            return JsValue.from_dict(json.loads(lines[-1]))
        except (json.JSONDecodeError, AttributeError) as e:
            raise InterpreterFault(f"unparsable harness result: {lines[-1][:200]}") from e

    def identity(self) -> bytes:
        if self._identity is None:
            try:
                version = subprocess.run(
                    [self._node, "--version"],
                    capture_output=True, text=True, env={}, timeout=10
                ).stdout.strip()
            except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                raise InterpreterFault(f"cannot query node version: {e}") from e
            flags = " ".join(f for f in self.sandbox_flags() if not f.startswith("--allow-fs-read"))
            self._identity = blake2_256(
                HARNESS_PATH.read_bytes() + b"\x00" + version.encode("utf-8") + b"\x00" + flags.encode("utf-8")
            )
        return self._identity
