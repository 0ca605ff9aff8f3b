"""
Shared building blocks: result envelopes, time parsing, circuit breaker and middleware.
"""
