"""sqlmove: relocate SQL Server storage between disks with a recorded path back."""

__version__ = "0.1.0"
