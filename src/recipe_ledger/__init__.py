"""
Recipe Ledger - recipe aggregate storage with a versioned edit history.

Every change to a recipe (its scalar fields, ingredients, cooking steps and
categories) is preceded by an immutable snapshot in the version ledger, and
any recorded state can be restored without losing the state it replaces.
"""

__version__ = "0.1.0"
