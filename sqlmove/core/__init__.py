"""Core infrastructure for sqlmove: engine access, OS collaborators, ledger and run context."""
