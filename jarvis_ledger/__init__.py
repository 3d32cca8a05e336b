"""
Jarvis Ledger - Source Package

A personal finance ledger that records expenses, income and credit-card
payments in an external record store, driven either by structured tool
calls or by natural-language commands translated by an LLM.

DESIGN PRINCIPLES:
1. The LLM translates, the engine decides
2. Validate before any write
3. Some progress, clearly reported (no silent rollbacks)
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "0.3.0"
__author__ = "Jarvis Ledger Team"
