#!/usr/bin/env python3
"""Constants for the remote sync transport.

These control request headers and the exponential backoff used when an
exchange with the remote authority fails transiently.
"""

# Client version reported in the X-Client-Version header.
CLIENT_VERSION: str = "1.0.0"

# Initial delay between retry attempts in seconds.
INITIAL_WAIT: float = 1.0

# Maximum delay between retry attempts in seconds.
MAX_WAIT: float = 10.0

# Multiplier for exponential backoff (delay = initial * multiplier^attempt).
WAIT_MULTIPLIER: float = 2.0

# HTTP status codes worth retrying: timeouts, throttling and server errors.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})
