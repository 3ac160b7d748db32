import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import proven
from proven import (
    JS_DRIVER_NAME,
    ClockHost,
    InterpreterFault,
    NodeInterpreter,
    Prover,
    ProverError,
    ProvenOutput,
    SqliteStateStore,
    bundled_scripts,
    package_code_hash,
    policy_to_dict,
    to_hex,
)

from . import config
from .logging_config import audit_log, configure_logging, set_request_id
from .models import (
    AllowCodeHashRequest,
    AskRequest,
    ConfigResponse,
    PolicyModel,
    ProvenOutputModel,
    RunJsFromUrlRequest,
    RunJsRequest,
    SetSecretRequest,
    TransferOwnershipRequest,
    UpdateConfigRequest,
    UpdateSecretRequest,
)
from .rate_limit import RateLimiter
from .security import (
    ValidationError,
    caller_account,
    extract_client_id,
    sanitize_for_logging,
    validate_hash,
    validate_url,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Proven attestation service", version=proven.__version__)

STATUS_BY_ERROR = {
    "Unauthorized": 403,
    "BadConfig": 409,
    "JsError": 422,
    "HostError": 502,
    "FetchError": 502,
}

run_limiter = RateLimiter(config.RUN_RPM, max_keys=config.RATE_LIMIT_MAX_CLIENTS)
admin_limiter = RateLimiter(config.ADMIN_RPM, max_keys=config.RATE_LIMIT_MAX_CLIENTS)
PROVER: Optional[Prover] = None


class RateLimited(Exception):
    def __init__(self, client_id: str, endpoint: str, retry_after: float):
        self.client_id = client_id
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(f"{client_id} on {endpoint}")


def build_prover() -> Prover:
    """Open the deployed instance from the configured seed, state db and node binary."""
    interpreter = NodeInterpreter(config.NODE_BINARY, config.JS_TIMEOUT_SECONDS)
    host = ClockHost.from_seed_file(
        config.INSTANCE_SEED_PATH,
        package_code_hash(Path(proven.__file__).parent),
        genesis_epoch=config.GENESIS_EPOCH,
        block_seconds=config.BLOCK_SECONDS,
        fetch_timeout=config.FETCH_TIMEOUT_SECONDS,
    )
    try:
        host.set_driver(JS_DRIVER_NAME, interpreter.identity())
    except InterpreterFault as e:
        # Runs fail with HostError until the engine is available.
        logger.error("script engine unavailable: %s", e)

    Path(config.STATE_DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    store = SqliteStateStore(config.STATE_DB_PATH)
    owner = config.resolve_owner() if store.load() is None else bytes(32)
    return Prover.restore(host, interpreter, store, owner, config.load_initial_policy())


@app.on_event("startup")
def _startup():
    global PROVER
    level = "DEBUG" if config.is_debug() else config.LOG_LEVEL
    configure_logging(level, config.LOG_JSON, config.LOG_FILE)

    missing = [name for name, ok in config.validate_config().items() if not ok]
    if missing:
        logger.warning("configuration incomplete: %s", ", ".join(missing))
        if config.is_production():
            raise RuntimeError(f"refusing to start in prod with missing config: {missing}")
    PROVER = build_prover()
    logger.info("prover ready, pubkey %s", to_hex(PROVER.pubkey()))


def get_prover() -> Prover:
    if PROVER is None:
        raise ProverError("service not initialised")
    return PROVER


# ============================================================
# Middleware and error mapping
# ============================================================

@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get("x-request-id") or None)
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


def _error(status: int, code: str, detail: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": code, "detail": detail}, headers=headers)


@app.exception_handler(ProverError)
def _prover_error(request: Request, exc: ProverError):
    status = STATUS_BY_ERROR.get(exc.code, 500)
    if exc.code == "Unauthorized":
        audit_log.security_event("unauthorized", path=request.url.path, detail=exc.detail)
    return _error(status, exc.code, exc.detail)


@app.exception_handler(ValidationError)
def _validation_error(request: Request, exc: ValidationError):
    return _error(400, "InvalidInput", str(exc))


@app.exception_handler(RequestValidationError)
def _request_validation_error(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]
    return _error(400, "InvalidInput", f"invalid fields: {', '.join(fields)}")


@app.exception_handler(RateLimited)
def _rate_limited(request: Request, exc: RateLimited):
    audit_log.rate_limit_exceeded(exc.client_id, exc.endpoint)
    return _error(
        429, "RateLimited", "too many requests",
        headers={"Retry-After": str(int(exc.retry_after) + 1)}
    )


def _limit(limiter: RateLimiter, request: Request) -> None:
    peer = request.client.host if request.client else None
    client_id = extract_client_id(request.headers, peer, config.TRUST_FORWARDED_FOR)
    result = limiter.check(client_id)
    if not result.allowed:
        raise RateLimited(client_id, request.url.path, result.retry_after or 0.0)


def _attest(endpoint: str, request: Request, run) -> dict:
    """Run one execution call, auditing the outcome either way."""
    audit_log.execution_request(endpoint, to_hex(caller_account(request.headers)))
    try:
        out: ProvenOutput = run()
    except ProverError as e:
        audit_log.execution_rejected(endpoint, e.code, e.detail)
        raise
    payload = out.decoded()
    audit_log.attestation_issued(endpoint, to_hex(payload.js_code_hash), payload.block_number)
    return ProvenOutputModel.from_output(out).model_dump()


def _admin(operation: str, request: Request, apply, **changes) -> dict:
    _limit(admin_limiter, request)
    caller = caller_account(request.headers)
    apply(caller)
    audit_log.admin_change(operation, to_hex(caller), sanitize_for_logging(changes))
    return {"status": "ok"}


# ============================================================
# Queries
# ============================================================

@app.get("/health")
def health():
    prover = PROVER
    return {
        "status": "ok" if prover is not None else "starting",
        "version": proven.__version__,
        "env": config.ENV,
        "engine": prover is not None and prover.host.get_driver(JS_DRIVER_NAME) is not None,
    }


@app.get("/pubkey")
def pubkey():
    return {"pubkey": to_hex(get_prover().pubkey())}


@app.get("/config")
def get_config(request: Request):
    prover = get_prover()
    policy = prover.get_config(caller_account(request.headers))
    return ConfigResponse(owner=to_hex(prover.owner), policy=PolicyModel.from_policy(policy)).model_dump()


@app.get("/scripts")
def scripts():
    return {name: to_hex(h) for name, h in bundled_scripts().items()}


# ============================================================
# Runs
# ============================================================

@app.post("/run_js")
def run_js(req: RunJsRequest, request: Request):
    _limit(run_limiter, request)
    prover = get_prover()
    return _attest("/run_js", request, lambda: prover.run_js(req.code, req.args, req.secret))


@app.post("/run_js_from_url")
def run_js_from_url(req: RunJsFromUrlRequest, request: Request):
    _limit(run_limiter, request)
    url = validate_url(req.url)
    prover = get_prover()
    return _attest("/run_js_from_url", request, lambda: prover.run_js_from_url(url, req.args))


@app.post("/ask")
def ask(req: AskRequest, request: Request):
    _limit(run_limiter, request)
    prover = get_prover()
    return _attest("/ask", request, lambda: prover.ask_model(req.model, req.prompt))


# ============================================================
# Admin
# ============================================================

@app.post("/admin/transfer_ownership")
def transfer_ownership(req: TransferOwnershipRequest, request: Request):
    new_owner = validate_hash(req.new_owner, "new_owner")
    prover = get_prover()
    return _admin(
        "transfer_ownership", request,
        lambda caller: prover.transfer_ownership(caller, new_owner),
        new_owner=to_hex(new_owner),
    )


@app.post("/admin/update_config")
def update_config(req: UpdateConfigRequest, request: Request):
    try:
        policy = req.policy.to_policy()
    except ValueError as e:
        raise ValidationError("policy", str(e))
    prover = get_prover()
    return _admin(
        "update_config", request,
        lambda caller: prover.update_config(caller, policy),
        policy=policy_to_dict(policy),
    )


@app.post("/admin/update_secret")
def update_secret(req: UpdateSecretRequest, request: Request):
    prover = get_prover()
    return _admin("update_secret", request, lambda caller: prover.update_secret(caller, req.secret))


@app.post("/admin/allow_code_hash")
def allow_code_hash(req: AllowCodeHashRequest, request: Request):
    code_hash = validate_hash(req.code_hash, "code_hash")
    prover = get_prover()
    return _admin(
        "allow_code_hash", request,
        lambda caller: prover.allow_code_hash(caller, code_hash),
        code_hash=to_hex(code_hash),
    )


@app.post("/admin/set_secret")
def set_secret(req: SetSecretRequest, request: Request):
    code_hash = validate_hash(req.code_hash, "code_hash")
    prover = get_prover()
    return _admin(
        "set_secret", request,
        lambda caller: prover.set_secret(caller, code_hash, req.secret),
        code_hash=to_hex(code_hash),
    )
