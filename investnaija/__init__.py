"""
InvestNaija Backend

Wallet, micro-investing, crypto trading and bill payment services for
Nigerian retail users, with a double-entry ledger behind every naira
movement and a hash-chained audit trail.
"""

__version__ = "1.0.0"
