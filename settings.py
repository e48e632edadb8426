from __future__ import annotations

import os
from typing import Tuple

from dotenv import load_dotenv

# Load environment variables so KOT_* settings can live in a local .env file.
load_dotenv()

ARITHMETIC_MODES = ("legacy", "standard")
DEFAULT_ARITHMETIC = "legacy"


def arithmetic_mode() -> str:
    mode = (os.environ.get("KOT_ARITHMETIC") or DEFAULT_ARITHMETIC).strip().lower()
    if mode not in ARITHMETIC_MODES:
        raise ValueError(f"KOT_ARITHMETIC must be one of {', '.join(ARITHMETIC_MODES)}, got {mode!r}")
    return mode


def debug_enabled() -> bool:
    return (os.environ.get("KOT_DEBUG") or "").strip().lower() in {"1", "true", "yes"}


def server_address() -> Tuple[str, int]:
    host = os.environ.get("KOT_HOST") or "0.0.0.0"
    port = int(os.environ.get("KOT_PORT") or 5000)
    return host, port


def log_debug(message: str) -> None:
    # Simple debug logger so interpreter activity is visible in the server console.
    if debug_enabled():
        print(f"[KOT DEBUG] {message}", flush=True)
