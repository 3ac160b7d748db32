"""
Proven Execution Dispatcher

Runs caller-supplied code under the active access policy and hands the
result to the attestation builder.

The secret never appears in the code that gets hashed. It is appended to the
arguments and a prelude fragment pops it into the ``secretData`` global
before the caller's fragment runs in the same scope, so rotating a secret
never changes a script's identity.

Ordering matters: the policy check happens before the interpreter is
touched, so disallowed code never executes, it is not merely left unsigned.
"""

import logging
from typing import Callable, Optional, Sequence

from . import __version__
from .attestation import AttestationBuilder, ProvenOutput
from .errors import FetchError, InterpreterFault, JsError
from .hashing import to_hex
from .host import Host
from .interpreter import Interpreter
from .policy import AccessPolicy, check_allowed, resolve_secret
from .signing import KeyService

logger = logging.getLogger(__name__)

SECRET_PRELUDE = "var secretData = scriptArgs.pop();"

FETCH_HEADERS = {
    "User-Agent": f"proven/{__version__}",
    "Accept": "application/javascript, text/javascript, text/plain, */*",
}


class ExecutionDispatcher:
    """
    Policy-checked execution followed by attestation.

    ``policy_source`` returns the policy to apply; it is read once per call.
    """

    def __init__(
        self,
        host: Host,
        interpreter: Interpreter,
        keys: KeyService,
        builder: AttestationBuilder,
        policy_source: Callable[[], AccessPolicy]
    ):
        self._host = host
        self._interpreter = interpreter
        self._keys = keys
        self._builder = builder
        self._policy_source = policy_source

    def run(self, code: str, args: Sequence[str], explicit_secret: Optional[str] = None) -> ProvenOutput:
        js_code_hash = self._keys.hash_code(code)
        policy = self._policy_source()
        check_allowed(policy, js_code_hash)

        secret = resolve_secret(policy, js_code_hash, explicit_secret)
        script_args = [str(a) for a in args] + [secret]

        logger.debug("executing %s with %d args", to_hex(js_code_hash), len(args))
        try:
            value = self._interpreter.execute([SECRET_PRELUDE, code], script_args)
        except InterpreterFault as e:
            raise JsError(str(e)) from e
        if not value.is_string():
            raise JsError(f"Invalid output: {value!r}")
        try:
            value.value.encode("utf-8")
        except UnicodeEncodeError as e:
            raise JsError("Invalid output: string is not valid Unicode") from e

        return self._builder.build(value.value, js_code_hash)

    def fetch_code(self, url: str) -> str:
        """
        Download script source.

        Raises:
            FetchError: on transport failure, a non-2xx status or non-UTF-8 body
        """
        response = self._host.http_get(url, dict(FETCH_HEADERS))
        if not response.ok():
            raise FetchError(f"fetching {url} returned HTTP {response.status}")
        try:
            return response.body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FetchError(f"body of {url} is not valid UTF-8: {e}") from e

    def run_from_url(self, url: str, args: Sequence[str]) -> ProvenOutput:
        return self.run(self.fetch_code(url), args)
