"""
Citation Kernel

A traffic citation core with:
- Append-only, effective-dated violation rule catalog
- Fixed and progressive fine calculation
- Citation and contest lifecycles as coupled state machines
- Locked-counter document numbering
"""

__version__ = "0.1.0"
