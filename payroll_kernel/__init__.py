"""
Payroll Kernel

Shared foundation of the payroll and tax engine:
- Structured JSON logging and a typed exception hierarchy
- SQLAlchemy base classes, engine and session management
- Immutable employee / employment / allocation snapshots
- Persisted payroll records and inter-subsidiary advances
"""

__version__ = "0.1.0"
