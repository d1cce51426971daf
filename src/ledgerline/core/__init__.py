"""Core infrastructure: canonical hashing, configuration, logging, ledger, rate limiting."""
