"""
Global configuration for the harness.

Environment-specific settings that apply across all modules.
"""

import os
import re

CHAIN_ENV = os.environ.get("CHAIN_ENV", "local").strip().lower()
"""Name of the network section to load from the cluster config. Defaults to 'local'."""

if not re.fullmatch(r"[a-z0-9][a-z0-9_.-]*", CHAIN_ENV):
    raise ValueError(
        f"Invalid CHAIN_ENV environment variable: '{CHAIN_ENV}'. "
        "Expected a network name such as 'local', 'devnet' or 'testnet'."
    )

WALLET_PRIVATE_KEY_ENV = "WALLET_PRIVATE_KEY"
"""Environment variable that overrides the founder wallet key of any network."""

FOUNDER_WALLET_KEY_ENV = "FOUNDER_WALLET_PK"
"""Environment variable read when the config keeps the founder key out of the file."""

SSH_KEY_ENV = "SSH_KEY"
"""Default environment variable holding the SSH private key."""
