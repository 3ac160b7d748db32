"""
Configuration module for the proven service.

Centralizes all configuration with environment variable support and
validation.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from proven import AccessPolicy, PublicPolicy, parse_hash, policy_from_dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("PROVEN_ENV", "dev")  # dev|stage|prod

# Rate limits (requests per minute)
RUN_RPM = int(os.getenv("RUN_RPM", "60"))
ADMIN_RPM = int(os.getenv("ADMIN_RPM", "30"))
RATE_LIMIT_MAX_CLIENTS = int(os.getenv("RATE_LIMIT_MAX_CLIENTS", "10000"))
# Only set behind a proxy that overwrites X-Forwarded-For
TRUST_FORWARDED_FOR = os.getenv("TRUST_FORWARDED_FOR", "").lower() in ("1", "true", "yes")

# Paths
STATE_DB_PATH = os.getenv("STATE_DB_PATH", "data/proven_state.db")
INSTANCE_SEED_PATH = os.getenv("INSTANCE_SEED_PATH", "secrets/instance_seed.json")
INITIAL_POLICY_PATH = os.getenv("INITIAL_POLICY_PATH", "")

# Ownership at first deployment: explicit account, or derived from a token
OWNER_ACCOUNT = os.getenv("OWNER_ACCOUNT", "")
OWNER_TOKEN = os.getenv("OWNER_TOKEN", "")

# Script engine
NODE_BINARY = os.getenv("NODE_BINARY", "node")
JS_TIMEOUT_SECONDS = float(os.getenv("JS_TIMEOUT_SECONDS", "30"))
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))

# Ledger clock
GENESIS_EPOCH = int(os.getenv("GENESIS_EPOCH", "1704067200"))
BLOCK_SECONDS = int(os.getenv("BLOCK_SECONDS", "6"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "1").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("LOG_FILE") or None


# ============================================================
# Loaders
# ============================================================

def load_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_initial_policy(path: Optional[str] = None) -> AccessPolicy:
    """Policy used on first deployment; public when no file is configured."""
    path = INITIAL_POLICY_PATH if path is None else path
    if not path:
        return PublicPolicy()
    return policy_from_dict(load_json(path))


def resolve_owner(account: Optional[str] = None, token: Optional[str] = None) -> bytes:
    """
    Owner account for first deployment.

    Raises:
        ValueError: if neither OWNER_ACCOUNT nor OWNER_TOKEN is set
    """
    from .security import account_from_token

    account = OWNER_ACCOUNT if account is None else account
    token = OWNER_TOKEN if token is None else token
    if account:
        return parse_hash(account)
    if token:
        return account_from_token(token)
    raise ValueError("OWNER_ACCOUNT or OWNER_TOKEN must be set")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate that required configuration is present.
    Returns dict of item -> ok.
    """
    checks = {
        "instance_seed": Path(INSTANCE_SEED_PATH).exists(),
        "owner": bool(OWNER_ACCOUNT or OWNER_TOKEN),
    }
    if INITIAL_POLICY_PATH:
        checks["initial_policy"] = Path(INITIAL_POLICY_PATH).exists()
    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("PROVEN_DEBUG", "").lower() in ("1", "true", "yes")
