"""Example pipeline factories for `ledgerline run`."""
