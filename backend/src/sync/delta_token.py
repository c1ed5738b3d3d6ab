"""Delta continuation tokens.

A token is ``dt_<epoch microseconds, 20 digits>_<8 hex chars>``. The
timestamp part makes tokens sort lexicographically in minting order; the
suffix chains each token to the one it continues. Callers must treat the
string as opaque.
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Optional

_TOKEN_RE = re.compile(r"^dt_(\d{20})_[0-9a-f]{8}$")


def token_timestamp(token: Optional[str]) -> Optional[int]:
    """Epoch microseconds encoded in a token minted here, else None."""
    if not token:
        return None
    match = _TOKEN_RE.match(token)
    return int(match.group(1)) if match else None


def mint_delta_token(previous: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Mint the token that follows ``previous``.

    Always orders after ``previous`` when that was minted here, even if the
    clock went backwards.
    """
    now = now or datetime.now(timezone.utc)
    micros = int(now.timestamp() * 1_000_000)

    previous_micros = token_timestamp(previous)
    if previous_micros is not None and previous_micros >= micros:
        micros = previous_micros + 1

    chain = hashlib.sha256((previous or "").encode("utf-8")).hexdigest()[:8]
    return f"dt_{micros:020d}_{chain}"
