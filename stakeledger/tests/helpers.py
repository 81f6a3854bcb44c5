from __future__ import annotations

ASSET = "TOKEN"
OWNER = "owner"
USER = "user"
UNIT = 10**18
T0 = 1_700_000_000
