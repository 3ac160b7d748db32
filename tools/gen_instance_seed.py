import json
import os

from proven import InMemoryHost, KeyService, to_hex
from proven.util import b64e, generate_seed

SEED_PATH = os.getenv("INSTANCE_SEED_PATH", "secrets/instance_seed.json")

if os.path.exists(SEED_PATH):
    raise SystemExit(f"{SEED_PATH} already exists; refusing to replace the instance identity")

os.makedirs(os.path.dirname(SEED_PATH) or ".", exist_ok=True)
seed = generate_seed()
with open(SEED_PATH, "w", encoding="utf-8") as f:
    json.dump({"seed_b64": b64e(seed)}, f, indent=2)

host = InMemoryHost(seed, bytes(32))
print("Generated instance seed:", SEED_PATH)
print("pubkey:", to_hex(KeyService(host).public_key()))
