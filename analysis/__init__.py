"""
Analysis Engine Module

Derives analytics from the quote ledger:
- Performance baselines (latest vs. N days/months/years back)
- RS Levy, weekly (27 ISO-week closes) and daily (200 quotes)
- Quote counts per security/exchange pair
"""

__version__ = "0.1.0"
