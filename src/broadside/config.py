"""Central configuration for runtime-tunable parameters.

Values are read once from environment variables at import time so that a
normal game runs with sensible defaults while the test-suite (or a player
on a slow link) can change timeouts without touching code.
"""

from __future__ import annotations

import os


# ===========================================================================
# Network Defaults
# ===========================================================================
# BROADSIDE_HOST: Host the client role dials.
#   Defaults to "localhost" (both players on the same machine).
#   Example: export BROADSIDE_HOST=192.168.1.20
DEFAULT_HOST: str = os.getenv("BROADSIDE_HOST", "localhost")


# ===========================================================================
# Timeouts
# ===========================================================================
# BROADSIDE_MOVE_TIMEOUT: Seconds to wait for the peer's move before the
#   session gives up on it. 0 disables the timeout (wait forever).
#   Example: export BROADSIDE_MOVE_TIMEOUT=120
MOVE_TIMEOUT: float = float(os.getenv("BROADSIDE_MOVE_TIMEOUT", "0"))

# BROADSIDE_CONNECT_TIMEOUT: Seconds the client role keeps re-dialling while
#   the server is not listening yet.
#   Example: export BROADSIDE_CONNECT_TIMEOUT=30
CONNECT_TIMEOUT: float = float(os.getenv("BROADSIDE_CONNECT_TIMEOUT", "10"))

# Pause between two dial attempts.
CONNECT_RETRY_DELAY: float = 0.2


# ===========================================================================
# Game Constants
# ===========================================================================
# Width and height of the square grid. Not overridable: both peers must agree.
BOARD_SIZE: int = 10

# Fixed ship roster: list of (name, length) tuples in placement order.
SHIPS = [
    ("carrier", 5),
    ("battleship", 4),
    ("cruiser", 3),
    ("destroyer", 2),
    ("destroyer2", 2),
    ("raft", 1),
    ("raft2", 1),
]


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# BROADSIDE_DEBUG: If "1", enables debug logging across modules.
#   Defaults to "0".
DEBUG: bool = os.getenv("BROADSIDE_DEBUG", "0") == "1"


# ===========================================================================
# Cryptography Defaults
# ===========================================================================
# BROADSIDE_KEY: Pre-shared AES key as a hex string, used by --secure when no
#   explicit key is given. Both peers must use the same key.
DEFAULT_KEY_HEX: str = os.getenv("BROADSIDE_KEY", "00112233445566778899AABBCCDDEEFF")
DEFAULT_KEY: bytes = bytes.fromhex(DEFAULT_KEY_HEX)
