"""
Test doubles for the proven capabilities.

ScriptedInterpreter stands in for a JavaScript engine: each known script
text maps to a Python callable, and the secret prelude is honored the same
way the real harness honors it (the last argument moves into ``secretData``).
"""

import json
from typing import Callable, Dict, List, Optional, Sequence

from proven import (
    JS_DRIVER_NAME,
    SECRET_PRELUDE,
    FetchError,
    HttpResponse,
    InMemoryHost,
    Interpreter,
    InterpreterFault,
    JsValue,
    blake2_256,
)

SEED = bytes(range(32))
VERIFIER_CODE_HASH = blake2_256(b"verifier under test")
ENGINE_ID = blake2_256(b"scripted engine")

OWNER = b"\x01" * 32
STRANGER = b"\x02" * 32

Script = Callable[[dict, List[str]], JsValue]


def echo_secret(scope: dict, args: List[str]) -> JsValue:
    return JsValue.string(scope["secretData"])


def join_args(scope: dict, args: List[str]) -> JsValue:
    return JsValue.string(",".join(args))


class ScriptedInterpreter(Interpreter):
    """
    Interpreter whose "scripts" are Python callables keyed by source text.

    Unregistered sources that are JSON literals evaluate to themselves, so
    ``'"Hello"'`` yields the string ``Hello`` and ``'1'`` yields a number.
    """

    def __init__(self, scripts: Optional[Dict[str, Script]] = None, identity: bytes = ENGINE_ID):
        self.scripts: Dict[str, Script] = dict(scripts or {})
        self.calls: List[dict] = []
        self._identity = identity
        self.fault: Optional[str] = None

    def register(self, code: str, script: Script) -> str:
        self.scripts[code] = script
        return code

    def execute(self, fragments: Sequence[str], args: Sequence[str]) -> JsValue:
        args = list(args)
        self.calls.append({"fragments": list(fragments), "args": list(args)})
        if self.fault:
            raise InterpreterFault(self.fault)

        scope: dict = {}
        value = JsValue("undefined")
        for fragment in fragments:
            if fragment == SECRET_PRELUDE:
                scope["secretData"] = args.pop()
                value = JsValue("undefined")
            elif fragment in self.scripts:
                value = self.scripts[fragment](scope, args)
            else:
                value = self._literal(fragment)
        return value

    @staticmethod
    def _literal(code: str) -> JsValue:
        try:
            parsed = json.loads(code)
        except ValueError:
            return JsValue("exception", f"SyntaxError: {code[:40]}")
        if isinstance(parsed, str):
            return JsValue.string(parsed)
        if isinstance(parsed, bool):
            return JsValue("bool", parsed)
        if isinstance(parsed, (int, float)):
            return JsValue("number", parsed)
        if parsed is None:
            return JsValue("null")
        return JsValue("other", code)

    def identity(self) -> bytes:
        return self._identity


class FakeFetcher:
    """Serves canned responses and records every request."""

    def __init__(self, responses: Optional[Dict[str, HttpResponse]] = None):
        self.responses = dict(responses or {})
        self.requests: List[dict] = []

    def add(self, url: str, body: bytes, status: int = 200) -> str:
        self.responses[url] = HttpResponse(status=status, body=body)
        return url

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        self.requests.append({"url": url, "headers": dict(headers or {})})
        if url not in self.responses:
            raise FetchError(f"failed to fetch {url}: connection refused")
        return self.responses[url]


def make_host(block_number: int = 100, fetcher: Optional[FakeFetcher] = None, engine: bool = True) -> InMemoryHost:
    drivers = {JS_DRIVER_NAME: ENGINE_ID} if engine else {}
    return InMemoryHost(
        SEED,
        VERIFIER_CODE_HASH,
        block_number=block_number,
        drivers=drivers,
        fetcher=fetcher,
    )
