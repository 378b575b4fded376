"""
Dental revenue cycle core.

Claim lifecycle and scrubbing, remittance reconciliation, and A/R aging
and prioritization over a tenant-partitioned document store.
"""

__version__ = "0.1.0"
