"""
Proven: signed attestations of script execution

Version: 0.3.0
License: Apache 2.0

A caller submits a script; a sandboxed interpreter runs it; the caller gets
back the output together with an Ed25519 signature over:

    output, js_code_hash, js_engine_code_hash,
    contract_code_hash, contract_address, block_number

Anyone holding the instance's public key can later confirm that this
instance, running this code, produced this output, without re-running it.

Usage:
    from proven import (
        Prover,
        InMemoryHost,
        NodeInterpreter,
        WhitelistPolicy,
        code_hash,
        verify_proven_output,
    )

    interpreter = NodeInterpreter()
    host = InMemoryHost(seed, verifier_code_hash, drivers={"JsRuntime": interpreter.identity()})
    prover = Prover(host, interpreter, owner=owner_account)

    out = prover.run_js('"Hello"', [])
    assert verify_proven_output(out)
    out.decoded().output  # "Hello"

    # Only pre-approved code may run, and it sees a shared secret
    prover.update_config(owner_account, WhitelistPolicy(secret='{"k":1}'))
    prover.allow_code_hash(owner_account, code_hash(source))
"""

__version__ = "0.3.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    ProverError,
    Unauthorized,
    BadConfig,
    JsError,
    HostError,
    FetchError,
    InterpreterFault,
)

# Hashing and encoding
from .hashing import (
    HASH_SIZE,
    code_hash,
    blake2_256,
    package_code_hash,
    parse_hash,
    parse_hex,
    to_hex,
)

# Capabilities
from .host import Host, InMemoryHost, ClockHost, JS_DRIVER_NAME
from .fetch import HttpResponse, RequestsFetcher
from .interpreter import Interpreter, JsValue, NodeInterpreter

# Policy
from .policy import (
    AccessPolicy,
    PublicPolicy,
    WhitelistPolicy,
    PerCodeSecretPolicy,
    check_allowed,
    resolve_secret,
    redact_for,
    policy_to_dict,
    policy_from_dict,
)

# Signing and attestation
from .signing import KeyService, SIGNER_KEY_LABEL, verify_signature, verify_proven_output
from .attestation import AttestationBuilder, ProvenPayload, ProvenOutput, PAYLOAD_FIELDS
from .dispatcher import ExecutionDispatcher, SECRET_PRELUDE

# State
from .store import StateStore, InMemoryStateStore, SqliteStateStore
from .admin import AdminSurface, ContractState

# Instance
from .prover import Prover
from .prompts import PRESET_MODELS, bundled_scripts, load_script, script_hash


__all__ = [
    "__version__",

    # Errors
    "ProverError",
    "Unauthorized",
    "BadConfig",
    "JsError",
    "HostError",
    "FetchError",
    "InterpreterFault",

    # Hashing
    "HASH_SIZE",
    "code_hash",
    "blake2_256",
    "package_code_hash",
    "parse_hash",
    "parse_hex",
    "to_hex",

    # Capabilities
    "Host",
    "InMemoryHost",
    "ClockHost",
    "JS_DRIVER_NAME",
    "HttpResponse",
    "RequestsFetcher",
    "Interpreter",
    "JsValue",
    "NodeInterpreter",

    # Policy
    "AccessPolicy",
    "PublicPolicy",
    "WhitelistPolicy",
    "PerCodeSecretPolicy",
    "check_allowed",
    "resolve_secret",
    "redact_for",
    "policy_to_dict",
    "policy_from_dict",

    # Signing and attestation
    "KeyService",
    "SIGNER_KEY_LABEL",
    "verify_signature",
    "verify_proven_output",
    "AttestationBuilder",
    "ProvenPayload",
    "ProvenOutput",
    "PAYLOAD_FIELDS",
    "ExecutionDispatcher",
    "SECRET_PRELUDE",

    # State
    "StateStore",
    "InMemoryStateStore",
    "SqliteStateStore",
    "AdminSurface",
    "ContractState",

    # Instance
    "Prover",
    "bundled_scripts",
    "load_script",
    "PRESET_MODELS",
    "script_hash",
]
