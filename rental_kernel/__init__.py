"""
Rental Kernel - shared infrastructure for the rental billing core.

- Engine / session-scope utilities and declarative base
- Fixed-point money helpers (2-decimal scale)
- Typed exception hierarchy with stable error codes
- Structured JSON logging and injectable clock
- Reference (collaborator) tables and the append-only audit trail
"""

__version__ = "0.1.0"
