"""Centralized constants for sqlmove to eliminate duplicate strings."""

# System databases are never detached or relocated
SYSTEM_DATABASES = frozenset({"master", "model", "msdb", "tempdb"})
TEMPDB = "tempdb"

# sys.master_files type_desc of log files
FILE_TYPE_LOG = "LOG"

# Engine page size used by sys.database_files.size
PAGE_SIZE_BYTES = 8192

# Registry values holding the instance default paths
DEFAULT_PATH_REGISTRY_HIVE = "HKEY_LOCAL_MACHINE"
DEFAULT_PATH_REGISTRY_KEY = r"Software\Microsoft\MSSQLServer\MSSQLServer"
DEFAULT_DATA_VALUE = "DefaultData"
DEFAULT_LOG_VALUE = "DefaultLog"

# Robocopy exit codes: bits 0-2 informational, bit 3 and above are failures
ROBOCOPY_WARNING_THRESHOLD = 4
ROBOCOPY_FAILURE_THRESHOLD = 8
ROBOCOPY_EXCLUDED_DIRS = ("System Volume Information", "$RECYCLE.BIN")

# External tools
POWERSHELL = "powershell.exe"
ROBOCOPY = "robocopy.exe"

# PowerShell sentinels
PS_NOT_FOUND = "NOT_FOUND"
PS_OK = "OK"

# Ledger
LEDGER_PREFIX = "rollback_ledger_"
LEDGER_ARCHIVE_DIR = "archive"

# Date/Time Format
RUN_ID_FORMAT = "%Y%m%d_%H%M%S"
