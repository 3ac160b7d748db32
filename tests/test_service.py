"""HTTP service tests."""

import json

from proven import (
    PerCodeSecretPolicy,
    ProvenOutput,
    WhitelistPolicy,
    code_hash,
    parse_hex,
    script_hash,
    to_hex,
    verify_proven_output,
)
from proven_service import config
from proven_service.rate_limit import RateLimiter
from proven_service.security import (
    ANONYMOUS,
    account_from_token,
    caller_account,
    extract_client_id,
    sanitize_for_logging,
)

from fakes import echo_secret


def _output(body) -> ProvenOutput:
    return ProvenOutput(body["payload"], parse_hex(body["signature"]), parse_hex(body["pubkey"]))


# ============================================================
# Queries
# ============================================================

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["engine"] is True


def test_pubkey(client, prover):
    r = client.get("/pubkey")
    assert r.json() == {"pubkey": to_hex(prover.pubkey())}


def test_scripts(client):
    r = client.get("/scripts")
    assert r.json()["ask_llm"] == to_hex(script_hash("ask_llm"))


def test_config_redacted_for_strangers(client, prover, owner_account, owner_headers):
    prover.update_config(owner_account, WhitelistPolicy(secret="top"))

    anon = client.get("/config").json()
    assert anon["owner"] == to_hex(owner_account)
    assert anon["policy"]["type"] == "whitelist"
    assert anon["policy"]["secret"] == ""

    owner = client.get("/config", headers=owner_headers).json()
    assert owner["policy"]["secret"] == "top"


def test_request_id_echoed(client):
    r = client.get("/health", headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"


# ============================================================
# Runs
# ============================================================

def test_run_js_hello(client):
    r = client.post("/run_js", json={"code": '"Hello"', "args": []})
    assert r.status_code == 200
    out = _output(r.json())
    assert verify_proven_output(out)
    payload = out.decoded()
    assert payload.output == "Hello"
    assert payload.block_number == 100
    assert r.json()["payload"].startswith('{"output":"Hello","js_code_hash":"0x')


def test_run_js_explicit_secret(client, interpreter):
    code = interpreter.register("echo", echo_secret)
    r = client.post("/run_js", json={"code": code, "secret": "mine"})
    assert _output(r.json()).decoded().output == "mine"


def test_run_js_non_string_output(client):
    r = client.post("/run_js", json={"code": "1"})
    assert r.status_code == 422
    assert r.json()["error"] == "JsError"
    assert "Invalid output" in r.json()["detail"]


def test_run_js_whitelist(client, prover, owner_account, owner_headers, interpreter):
    code = interpreter.register("print secretData", echo_secret)
    prover.update_config(owner_account, WhitelistPolicy(secret='{"k":1}'))

    r = client.post("/run_js", json={"code": code})
    assert r.status_code == 403
    assert r.json()["error"] == "Unauthorized"
    assert interpreter.calls == []

    r = client.post("/admin/allow_code_hash", headers=owner_headers,
                    json={"code_hash": to_hex(code_hash(code))})
    assert r.json() == {"status": "ok"}

    r = client.post("/run_js", json={"code": code})
    assert r.status_code == 200
    assert _output(r.json()).decoded().output == '{"k":1}'


def test_run_js_missing_engine(client, prover):
    prover.host.set_driver("JsRuntime", None)
    r = client.post("/run_js", json={"code": '"Hello"'})
    assert r.status_code == 502
    assert r.json()["error"] == "HostError"


def test_run_js_bad_body(client):
    r = client.post("/run_js", json={"args": []})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidInput"
    assert "code" in r.json()["detail"]


def test_run_js_from_url(client, fetcher):
    url = fetcher.add("https://scripts.example/hello.js", b'"Hello"')
    r = client.post("/run_js_from_url", json={"url": url, "args": []})
    assert r.status_code == 200
    assert _output(r.json()).decoded().output == "Hello"


def test_run_js_from_url_http_error(client, fetcher, interpreter):
    url = fetcher.add("https://scripts.example/gone.js", b"", status=404)
    r = client.post("/run_js_from_url", json={"url": url})
    assert r.status_code == 502
    assert r.json()["error"] == "FetchError"
    assert interpreter.calls == []


def test_run_js_from_url_rejects_non_http(client, fetcher):
    r = client.post("/run_js_from_url", json={"url": "file:///etc/passwd"})
    assert r.status_code == 400
    assert fetcher.requests == []


def test_ask(client, prover, owner_account, interpreter):
    from proven import load_script

    interpreter.register(load_script("ask_llm"), lambda scope, args: echo_secret(scope, args))
    prover.update_config(owner_account, PerCodeSecretPolicy())
    prover.set_secret(owner_account, script_hash("ask_llm"), '{"url":"https://llm.example"}')

    r = client.post("/ask", json={"model": "gpt-4o", "prompt": "hi"})
    assert r.status_code == 200
    payload = _output(r.json()).decoded()
    assert payload.js_code_hash == script_hash("ask_llm")
    assert json.loads(payload.output) == {"url": "https://llm.example"}


# ============================================================
# Admin
# ============================================================

def test_admin_requires_owner(client, prover):
    r = client.post("/admin/update_config", json={"policy": {"type": "whitelist"}})
    assert r.status_code == 403
    r = client.post("/admin/update_config", headers={"x-api-key": "someone-else"},
                    json={"policy": {"type": "whitelist"}})
    assert r.status_code == 403
    assert prover.get_config(prover.owner).type_name == "public"


def test_admin_update_config_and_secret(client, prover, owner_account, owner_headers):
    h = to_hex(code_hash("x"))
    r = client.post("/admin/update_config", headers=owner_headers,
                    json={"policy": {"type": "whitelist", "secret": "a", "allowed_code_hashes": [h]}})
    assert r.status_code == 200

    r = client.post("/admin/update_secret", headers=owner_headers, json={"secret": "b"})
    assert r.status_code == 200
    assert prover.get_config(owner_account) == WhitelistPolicy(
        secret="b", allowed_code_hashes=frozenset({code_hash("x")})
    )


def test_admin_bad_config(client, owner_headers):
    r = client.post("/admin/set_secret", headers=owner_headers,
                    json={"code_hash": to_hex(code_hash("x")), "secret": "s"})
    assert r.status_code == 409
    assert r.json()["error"] == "BadConfig"


def test_admin_set_secret(client, prover, owner_account, owner_headers):
    prover.update_config(owner_account, PerCodeSecretPolicy())
    r = client.post("/admin/set_secret", headers=owner_headers,
                    json={"code_hash": to_hex(code_hash("x")), "secret": "s"})
    assert r.status_code == 200
    assert dict(prover.get_config(owner_account).secrets) == {code_hash("x"): "s"}


def test_admin_rejects_malformed_hash(client, owner_headers):
    r = client.post("/admin/allow_code_hash", headers=owner_headers, json={"code_hash": "0x1234"})
    assert r.status_code == 400
    r = client.post("/admin/update_config", headers=owner_headers,
                    json={"policy": {"type": "whitelist", "allowed_code_hashes": ["nothex"]}})
    assert r.status_code == 400
    r = client.post("/admin/update_config", headers=owner_headers, json={"policy": {"type": "nobody"}})
    assert r.status_code == 400


def test_admin_transfer_ownership(client, prover, owner_headers):
    new_owner = account_from_token("next-owner")
    r = client.post("/admin/transfer_ownership", headers=owner_headers,
                    json={"new_owner": to_hex(new_owner)})
    assert r.status_code == 200
    assert prover.owner == new_owner

    r = client.post("/admin/update_secret", headers=owner_headers, json={"secret": "x"})
    assert r.status_code == 403


# ============================================================
# Rate limiting and helpers
# ============================================================

def test_run_rate_limit(client, monkeypatch):
    from proven_service import main

    monkeypatch.setattr(main, "run_limiter", RateLimiter(2))
    for _ in range(2):
        assert client.post("/run_js", json={"code": '"Hello"'}).status_code == 200
    r = client.post("/run_js", json={"code": '"Hello"'})
    assert r.status_code == 429
    assert r.json()["error"] == "RateLimited"
    assert "Retry-After" in r.headers
    # Limits are per client
    assert client.post("/run_js", headers={"x-api-key": "other"}, json={"code": '"Hello"'}).status_code == 200


def test_rate_limiter_window():
    now = [1000.0]
    limiter = RateLimiter(2, window_seconds=60, clock=lambda: now[0])
    assert limiter.allow("a") and limiter.allow("a")
    result = limiter.check("a")
    assert not result.allowed
    assert result.retry_after == 60
    now[0] += 60
    assert limiter.allow("a")
    now[0] += 120
    assert limiter.cleanup_expired() == 1


def test_rate_limiter_forgets_idle_clients():
    now = [1000.0]
    limiter = RateLimiter(5, window_seconds=60, clock=lambda: now[0])
    for i in range(500):
        assert limiter.allow(f"ip:10.0.{i // 256}.{i % 256}")
        now[0] += 1
    assert limiter.tracked <= 61


def test_rate_limiter_caps_clients():
    limiter = RateLimiter(5, clock=lambda: 1000.0, max_keys=10)
    for i in range(100):
        assert limiter.allow(f"client-{i}")
    assert limiter.tracked == 10
    # The most recent clients keep their counters
    assert limiter.check("client-99").remaining == 3


def test_forwarded_for_is_ignored_by_default(client, monkeypatch):
    from proven_service import main

    monkeypatch.setattr(main, "run_limiter", RateLimiter(2))
    for i in range(2):
        r = client.post("/run_js", headers={"x-forwarded-for": f"198.51.100.{i}"}, json={"code": '"Hello"'})
        assert r.status_code == 200
    r = client.post("/run_js", headers={"x-forwarded-for": "198.51.100.7"}, json={"code": '"Hello"'})
    assert r.status_code == 429
    assert main.run_limiter.tracked == 1

    monkeypatch.setattr(config, "TRUST_FORWARDED_FOR", True)
    r = client.post("/run_js", headers={"x-forwarded-for": "198.51.100.7"}, json={"code": '"Hello"'})
    assert r.status_code == 200


def test_extract_client_id():
    assert extract_client_id({"x-forwarded-for": "1.2.3.4"}, "10.0.0.1") == "ip:10.0.0.1"
    assert extract_client_id({"x-forwarded-for": "1.2.3.4, 5.6.7.8"}, "10.0.0.1", True) == "ip:1.2.3.4"
    assert extract_client_id({}) == "anonymous"
    assert extract_client_id({"x-api-key": "t"}, "10.0.0.1").startswith("api:")


def test_caller_account():
    assert caller_account({}) == ANONYMOUS
    assert caller_account({"x-api-key": "t"}) == account_from_token("t")
    assert account_from_token("t") != account_from_token("u")


def test_sanitize_for_logging():
    data = {"secret": "s", "policy": {"secrets": {"0x1": "a"}, "type": "per_code_secret"}, "code": "x"}
    clean = sanitize_for_logging(data)
    assert clean["secret"] == "[REDACTED]"
    assert clean["policy"]["secrets"] == "[REDACTED]"
    assert clean["policy"]["type"] == "per_code_secret"
    assert data["secret"] == "s"


def test_resolve_owner():
    assert config.resolve_owner(account="0x" + "ab" * 32, token="") == b"\xab" * 32
    assert config.resolve_owner(account="", token="t") == account_from_token("t")


def test_load_initial_policy(tmp_path):
    assert config.load_initial_policy("").type_name == "public"
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"type": "whitelist", "secret": "s"}))
    assert config.load_initial_policy(str(path)) == WhitelistPolicy(secret="s")


def test_validate_config(tmp_path, monkeypatch):
    seed = tmp_path / "seed.json"
    monkeypatch.setattr(config, "INSTANCE_SEED_PATH", str(seed))
    monkeypatch.setattr(config, "OWNER_TOKEN", "")
    monkeypatch.setattr(config, "OWNER_ACCOUNT", "")
    assert config.validate_config() == {"instance_seed": False, "owner": False}

    seed.write_text("{}")
    monkeypatch.setattr(config, "OWNER_TOKEN", "t")
    assert all(config.validate_config().values())


def test_environment_flags(monkeypatch):
    monkeypatch.setattr(config, "ENV", "prod")
    assert config.is_production()
    monkeypatch.setenv("PROVEN_DEBUG", "true")
    assert config.is_debug()
