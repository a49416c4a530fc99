"""Configuration management for ingestion runs.

Provides typed configuration classes that load connection defaults from
environment variables. A single ``IngestConfig`` instance is built once per
run and handed explicitly to every component.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_BATCH_SIZE = 5000
DEFAULT_SAMPLE_SIZE = 1000
DEFAULT_VARCHAR_LENGTH = 255
# SQL Server refuses VARCHAR(n) above this; longer columns must use max
MAX_VARCHAR_LENGTH = 8000


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DestinationConfig:
    """SQL Server connection configuration.

    Server and database come from the destination name of each run; this
    class only carries how to reach them.
    """

    odbc_driver: str = ""
    username: str = ""
    password: str = ""
    trust_server_certificate: Optional[bool] = None
    connection_url: str = ""

    def __post_init__(self):
        self.odbc_driver = self.odbc_driver or os.environ.get(
            "DWINGEST_ODBC_DRIVER", "ODBC Driver 17 for SQL Server"
        )
        self.username = self.username or os.environ.get("DWINGEST_SQL_USER", "")
        self.password = self.password or os.environ.get("DWINGEST_SQL_PASSWORD", "")
        if self.trust_server_certificate is None:
            self.trust_server_certificate = _env_flag("DWINGEST_TRUST_SERVER_CERTIFICATE", True)
        self.connection_url = self.connection_url or os.environ.get("DWINGEST_CONNECTION_URL", "")

    @property
    def trusted_connection(self) -> bool:
        return not self.username


@dataclass
class IngestConfig:
    """Top-level configuration of one ingestion run."""

    batch_size: int = DEFAULT_BATCH_SIZE
    sample_size: int = DEFAULT_SAMPLE_SIZE
    # None means VARCHAR(max)
    varchar_length: Optional[int] = DEFAULT_VARCHAR_LENGTH
    decimal_precision: int = 18
    decimal_scale: int = 2
    timeout_seconds: int = 0
    force: bool = False
    encoding: str = "utf-8-sig"
    delimiter: str = ","
    sheet_name: Optional[str] = None
    skip_bad_lines: bool = False
    log_file: Optional[str] = None
    destination: DestinationConfig = field(default_factory=DestinationConfig)

    def validate(self) -> list:
        """Validate configuration parameters.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if self.batch_size < 1:
            errors.append("Batch size must be at least 1")
        if self.sample_size < 1:
            errors.append("Sample size must be at least 1")
        if self.varchar_length is not None and not 1 <= self.varchar_length <= MAX_VARCHAR_LENGTH:
            errors.append(
                f"VARCHAR length must be between 1 and {MAX_VARCHAR_LENGTH}, or max"
            )
        if not 1 <= self.decimal_precision <= 38:
            errors.append("Decimal precision must be between 1 and 38")
        if not 0 <= self.decimal_scale <= self.decimal_precision:
            errors.append("Decimal scale must be between 0 and the precision")
        if self.timeout_seconds < 0:
            errors.append("Timeout must be zero (no timeout) or a positive number of seconds")
        if len(self.delimiter) != 1:
            errors.append("Delimiter must be a single character")
        if not self.encoding:
            errors.append("Encoding is required")

        return errors


def get_config(**overrides) -> IngestConfig:
    """Create and validate the run configuration.

    Args:
        **overrides: Field values that replace the defaults.

    Returns:
        Validated IngestConfig instance.

    Raises:
        ValueError: If any parameter is invalid.
    """
    config = IngestConfig(**overrides)
    errors = config.validate()
    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
    return config
