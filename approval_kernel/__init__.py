"""
Approval Kernel

Core types and persistence for an approval-chain request system:
- Immutable approval configs, actions and audit trails
- Request lifecycle states and transition table
- Typed error taxonomy and structured logging
- SQLAlchemy persistence with append-only action rows
"""

__version__ = "0.1.0"
