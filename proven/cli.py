#!/usr/bin/env python3
"""
Proven Command Line Interface

Usage:
    proven keygen --output <seed.json>
    proven pubkey --seed-file <seed.json>
    proven hash --file <script.js>
    proven payload --input <fields.json>
    proven run --file <script.js> --seed-file <seed.json> [--arg A ...] [--secret S]
    proven verify --output-file <proven_output.json> [--pubkey 0x..]
"""

import argparse
import json
import os
import sys
from pathlib import Path


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def _local_host(seed_file: str, block: int, drivers=None):
    from proven import InMemoryHost, package_code_hash
    from proven.util import b64d

    seed = b64d(load_json(seed_file)["seed_b64"])
    verifier_hash = package_code_hash(Path(__file__).parent)
    return InMemoryHost(seed, verifier_hash, block_number=block, drivers=drivers)


def cmd_keygen(args):
    """Generate an instance seed file."""
    from proven import KeyService, InMemoryHost, to_hex
    from proven.util import b64e, generate_seed

    if os.path.exists(args.output) and not args.force:
        print(f"Refusing to overwrite {args.output} (use --force)", file=sys.stderr)
        return 1
    seed = generate_seed()
    save_json({"seed_b64": b64e(seed)}, args.output)
    host = InMemoryHost(seed, bytes(32))
    print(f"Seed saved to: {args.output}")
    print(f"pubkey: {to_hex(KeyService(host).public_key())}")
    print(f"address: {to_hex(host.own_address())}")
    return 0


def cmd_pubkey(args):
    """Print the instance public key."""
    from proven import KeyService, to_hex

    host = _local_host(args.seed_file, 0)
    print(to_hex(KeyService(host).public_key()))
    return 0


def cmd_hash(args):
    """Compute the code hash of a script exactly as the prover does."""
    from proven import code_hash, to_hex

    print(to_hex(code_hash(Path(args.file).read_bytes())))
    return 0


def cmd_payload(args):
    """Print the canonical payload text for a set of payload fields."""
    from proven import PAYLOAD_FIELDS, ProvenPayload, parse_hash

    data = load_json(args.input)
    missing = [name for name in PAYLOAD_FIELDS if name not in data]
    if missing:
        print(f"✗ missing fields: {', '.join(missing)}", file=sys.stderr)
        return 1
    block_number = data["block_number"]
    try:
        if not isinstance(block_number, int) or isinstance(block_number, bool) or block_number < 0:
            raise ValueError("block_number must be a non-negative integer")
        payload = ProvenPayload(
            output=str(data["output"]),
            js_code_hash=parse_hash(data["js_code_hash"]),
            js_engine_code_hash=parse_hash(data["js_engine_code_hash"]),
            contract_code_hash=parse_hash(data["contract_code_hash"]),
            contract_address=parse_hash(data["contract_address"]),
            block_number=block_number,
        )
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    print(payload.to_json())
    return 0


def cmd_run(args):
    """Run a script locally under a public policy and print the attestation."""
    from proven import JS_DRIVER_NAME, NodeInterpreter, Prover, ProverError

    interpreter = NodeInterpreter(node_binary=args.node, timeout=args.timeout)
    host = _local_host(args.seed_file, args.block, {JS_DRIVER_NAME: interpreter.identity()})
    prover = Prover(host, interpreter, owner=bytes(32))

    code = Path(args.file).read_text(encoding="utf-8")
    try:
        out = prover.run_js(code, args.arg or [], args.secret)
    except ProverError as e:
        print(f"✗ {e.code}: {e.detail}", file=sys.stderr)
        return 1

    if args.output:
        save_json(out.to_dict(), args.output)
        print(f"Attestation saved to: {args.output}")
    else:
        print(json.dumps(out.to_dict(), indent=2))
    return 0


def cmd_verify(args):
    """Verify a saved attestation."""
    from proven import ProvenOutput, parse_hex, verify_proven_output

    data = load_json(args.output_file)
    out = ProvenOutput(
        payload=data["payload"],
        signature=parse_hex(data["signature"]),
        pubkey=parse_hex(data["pubkey"]),
    )
    if args.pubkey and parse_hex(args.pubkey) != out.pubkey:
        print("✗ INVALID: pubkey does not match the expected instance")
        return 1
    if not verify_proven_output(out):
        print("✗ INVALID: bad signature")
        return 1
    try:
        payload = out.decoded()
    except ValueError as e:
        print(f"✗ INVALID: malformed payload: {e}")
        return 1

    print("✓ VALID")
    print(json.dumps(payload.to_dict(), indent=2))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Proven attestation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  proven keygen -o secrets/instance_seed.json
  proven hash -f script.js
  proven payload -i fields.json
  proven run -f script.js -s secrets/instance_seed.json --arg hello -o out.json
  proven verify -O out.json --pubkey 0x...
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate an instance seed")
    keygen_parser.add_argument("-o", "--output", default="secrets/instance_seed.json", help="Seed file")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite an existing seed")

    # pubkey
    pubkey_parser = subparsers.add_parser("pubkey", help="Print the instance public key")
    pubkey_parser.add_argument("-s", "--seed-file", required=True, help="Seed file")

    # hash
    hash_parser = subparsers.add_parser("hash", help="Compute a script's code hash")
    hash_parser.add_argument("-f", "--file", required=True, help="Script file")

    # payload
    payload_parser = subparsers.add_parser("payload", help="Print the canonical payload text for given fields")
    payload_parser.add_argument("-i", "--input", required=True, help="JSON file with the payload fields")

    # run
    run_parser = subparsers.add_parser("run", help="Run and attest a script locally")
    run_parser.add_argument("-f", "--file", required=True, help="Script file")
    run_parser.add_argument("-s", "--seed-file", required=True, help="Seed file")
    run_parser.add_argument("--arg", action="append", help="Script argument (repeatable)")
    run_parser.add_argument("--secret", help="Secret injected as secretData")
    run_parser.add_argument("--block", type=int, default=0, help="Block number to attest")
    run_parser.add_argument("--node", default="node", help="Node.js binary")
    run_parser.add_argument("--timeout", type=float, default=30.0, help="Script timeout in seconds")
    run_parser.add_argument("-o", "--output", help="Output file for the attestation")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a saved attestation")
    verify_parser.add_argument("-O", "--output-file", required=True, help="Attestation JSON file")
    verify_parser.add_argument("--pubkey", help="Expected instance public key")

    args = parser.parse_args(argv)

    commands = {
        "keygen": cmd_keygen,
        "pubkey": cmd_pubkey,
        "hash": cmd_hash,
        "payload": cmd_payload,
        "run": cmd_run,
        "verify": cmd_verify,
    }
    if args.command not in commands:
        parser.print_help()
        return 2
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
