"""
Maaser Ledger - Source Package

A household tithe (maaser) tracker engine: income events produce an
obligation, fixed charitable commitments are deducted once per month,
and monthly obligations are settled alone or together with partners.

DESIGN PRINCIPLES:
1. Money is integer minor units, rounded once per income event
2. Validate first, then commit - never a half-applied write
3. No silent corrections
4. Payment snapshots are historical facts and never change
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Maaser Ledger Team"
