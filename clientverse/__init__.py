"""
ClientVerse - Source Package

A client-relationship manager for financial advisors: client records,
family members, policies and fund holdings, with AI-assisted autofill
and cross-sell suggestions.

DESIGN PRINCIPLES:
1. Validate before every write
2. Every call names its user explicitly
3. The UI shows only what the store has confirmed
4. AI suggests, the advisor decides
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "ClientVerse Team"
