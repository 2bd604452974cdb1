"""Pure domain layer: clock, snapshots and DTOs (zero I/O)."""
