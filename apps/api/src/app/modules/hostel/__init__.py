"""
Hostel module.

Hostel allocations are the recurring obligation source of the pipeline:
each active allocation produces one hostel-fee ledger entry per month.
"""
