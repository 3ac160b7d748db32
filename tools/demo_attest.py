import json
import os

import requests

from proven import ProvenOutput, code_hash, parse_hex, to_hex, verify_proven_output

BASE = os.getenv("PROVEN_URL", "http://127.0.0.1:8000")
OWNER_TOKEN = os.getenv("OWNER_TOKEN", "")

pubkey = requests.get(BASE + "/pubkey").json()["pubkey"]
print("Instance pubkey:", pubkey)

body = requests.post(BASE + "/run_js", json={"code": "`Hello ${scriptArgs[0]}`", "args": ["world"]}).json()
out = ProvenOutput(body["payload"], parse_hex(body["signature"]), parse_hex(body["pubkey"]))
assert body["pubkey"] == pubkey, "attestation signed by a different instance"
print("Signature valid:", verify_proven_output(out))
print("Payload:", json.dumps(out.decoded().to_dict(), indent=2))

if OWNER_TOKEN:
    headers = {"x-api-key": OWNER_TOKEN}
    policy = {"type": "whitelist", "secret": json.dumps({"greeting": "hi"})}
    resp = requests.post(BASE + "/admin/update_config", headers=headers, json={"policy": policy})
    print("Switch to whitelist:", resp.status_code, resp.text)

    code = "JSON.parse(secretData).greeting"
    resp = requests.post(BASE + "/run_js", json={"code": code})
    print("Before allow:", resp.status_code, resp.text)

    resp = requests.post(BASE + "/admin/allow_code_hash", headers=headers,
                         json={"code_hash": to_hex(code_hash(code))})
    print("Allow:", resp.status_code)
    print("After allow:", requests.post(BASE + "/run_js", json={"code": code}).json())
