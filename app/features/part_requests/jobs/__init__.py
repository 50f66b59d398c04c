"""
Batch jobs for the part request pipeline.
"""

from .offer_expiry_job import run_offer_expiry

__all__ = ["run_offer_expiry"]
