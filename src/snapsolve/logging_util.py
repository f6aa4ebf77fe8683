"""Logging utilities.

Key goal:
- Each pipeline step logs clearly so a failed extraction/solve/debug can be located quickly.
- Keep logging config minimal; allow integration into the caller's logging if needed.
- Credentials are never logged. Use key_fingerprint() when a key has to be identified.
"""
from __future__ import annotations

import hashlib
import logging
import os

_DEFAULT_LEVEL = os.environ.get("SNAPSOLVE_LOG_LEVEL", "INFO").upper()

def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)

    # If already configured elsewhere, do not attach handlers again.
    if logger.handlers:
        return logger

    logger.setLevel(_DEFAULT_LEVEL)

    h = logging.StreamHandler()
    fmt = logging.Formatter("[%(levelname)s] %(name)s:%(lineno)d - %(message)s")
    h.setFormatter(fmt)
    logger.addHandler(h)

    return logger

def log_step(logger: logging.Logger, step: str, msg: str):
    logger.info("[STEP %s] %s", step, msg)

def key_fingerprint(key: str) -> str:
    """len + first 8 hex chars of sha256, enough to tell two keys apart in logs."""
    k = key or ""
    return f"len={len(k)} sha8={hashlib.sha256(k.encode('utf-8')).hexdigest()[:8]}"

def preview(text: str, limit: int = 200) -> str:
    """One-line preview of model output for log lines."""
    if not text:
        return ""
    t = " ".join(str(text).split())
    if len(t) > limit:
        return t[:limit].rstrip() + " ..."
    return t
