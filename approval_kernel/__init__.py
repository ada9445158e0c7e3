"""
Approval Kernel

A multi-stage document approval engine with:
- Ordered review stages (sequential / parallel, all / any)
- Append-only, hash-chained action history
- Per-draft serialized transitions
- Replayable status derivation
"""

__version__ = "0.1.0"
