"""Protocol constants."""

from __future__ import annotations

# Total basis points (100%)
TOTAL_BPS = 10_000

# Smallest bounty a task may escrow
MIN_BOUNTY = 1_000_000

# Seconds a submission may wait for review before anyone can release it (48h)
AUTO_RELEASE_TIMEOUT = 172_800

# Amounts and counters are unsigned 64-bit; timestamps are signed 64-bit
U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1

HASH_SIZE = 32
TAGS_SIZE = 16

# Activity feed is capped at this many items per read
MAX_FEED_ITEMS = 50
