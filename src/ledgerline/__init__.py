"""
Ledgerline: durable, replayable discover/enrich/generate/publish pipelines.

Every stage outcome is written to a ledger before the run moves on, so a
crashed or interrupted run can be re-driven to the same decisions.
"""

__version__ = "0.1.0"
