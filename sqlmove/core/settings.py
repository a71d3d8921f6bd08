"""Runtime settings for sqlmove operations.

Provides centralized engine connection, timeout and tool configuration using
Pydantic BaseSettings with environment variable support for operational tuning.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SqlMoveSettings(BaseSettings):
    """Engine connection, timeout and external tool configuration."""

    instance: str = Field("localhost", alias="SQLMOVE_INSTANCE", description="SQL Server instance")
    odbc_driver: str = Field(
        "ODBC Driver 18 for SQL Server", alias="SQLMOVE_ODBC_DRIVER", description="ODBC driver name"
    )
    trusted_connection: bool = Field(True, alias="SQLMOVE_TRUSTED_CONNECTION")
    trust_server_certificate: bool = Field(True, alias="SQLMOVE_TRUST_SERVER_CERTIFICATE")
    username: str | None = Field(None, alias="SQLMOVE_USERNAME")
    password: str | None = Field(None, alias="SQLMOVE_PASSWORD")

    query_timeout: int = Field(
        0, alias="QUERY_TIMEOUT", description="Statement timeout in seconds (0 = none)"
    )
    service_timeout: int = Field(
        120, alias="SERVICE_TIMEOUT", description="Service start/stop timeout in seconds"
    )
    powershell_timeout: int = Field(
        60, alias="POWERSHELL_TIMEOUT", description="Volume command timeout in seconds"
    )
    copy_timeout: int = Field(
        0, alias="COPY_TIMEOUT", description="Bulk copy timeout in seconds (0 = none)"
    )

    robocopy_threads: int = Field(16, alias="ROBOCOPY_THREADS")
    robocopy_retries: int = Field(3, alias="ROBOCOPY_RETRIES")
    robocopy_wait: int = Field(5, alias="ROBOCOPY_WAIT")

    default_temp_letter: str = Field("Z", alias="SQLMOVE_DEFAULT_TEMP_LETTER")
    ledger_dir: str = Field("ledgers", alias="SQLMOVE_LEDGER_DIR")
    log_dir: str = Field("logs", alias="SQLMOVE_LOG_DIR")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    def connection_string(self) -> str:
        """Build the ODBC connection string for the configured instance."""
        parts = [
            f"DRIVER={{{self.odbc_driver}}}",
            f"SERVER={self.instance}",
            "DATABASE=master",
        ]
        if self.username:
            parts.append(f"UID={self.username}")
            parts.append(f"PWD={self.password or ''}")
        elif self.trusted_connection:
            parts.append("Trusted_Connection=yes")
        if self.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"


def get_settings() -> SqlMoveSettings:
    """Load settings from the environment and ``.env``."""
    return SqlMoveSettings()
