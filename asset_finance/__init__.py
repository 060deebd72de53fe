"""
Asset Financing Core

Loan lifecycle and repayment engine for motorcycle/tricycle asset financing:
origination, repayment schedules, payment application, delinquency tracking
and asset recovery.
"""

__version__ = "1.0.0"
