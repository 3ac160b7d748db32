"""
Proven Error Taxonomy

Every fallible operation raises one of these. Callers at the service
boundary distinguish them by ``code``.
"""

from typing import Optional


class ProverError(Exception):
    """Base class for all errors surfaced by a prover instance."""
    code = "ProverError"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or ""
        super().__init__(self.detail or self.code)

    def to_dict(self):
        return {"error": self.code, "detail": self.detail}


class Unauthorized(ProverError):
    """Caller failed an ownership check, or code failed the whitelist."""
    code = "Unauthorized"


class BadConfig(ProverError):
    """Admin operation is invalid under the active policy shape, or its arguments are malformed."""
    code = "BadConfig"


class JsError(ProverError):
    """The interpreter returned a non-string value or faulted."""
    code = "JsError"


class HostError(ProverError):
    """A host capability (engine registry, metadata) failed for this call."""
    code = "HostError"


class FetchError(HostError):
    """Fetching code over HTTP failed: transport, status or encoding."""
    code = "FetchError"


class InterpreterFault(Exception):
    """
    Raised by an interpreter driver when execution itself fails.

    Never crosses the prover boundary: the dispatcher converts it to JsError.
    """
