"""Privacy-safe request telemetry.

One structured event per request, carrying only lengths, counts, booleans,
and a salted hash of the client address.
"""
