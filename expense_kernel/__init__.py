"""
Expense Kernel - signed approval chain for expense reports

A tamper-evident approval workflow with:
- Canonical, schema-per-transition payload encoding
- Ephemeral ECDSA P-256 signatures per approval step
- Role- and state-gated transitions recorded by conditional update
- Independent re-verification of every signature at confirmation time
"""

__version__ = "0.1.0"
