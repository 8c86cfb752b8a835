"""
Configuration loader with validation using Pydantic.
Supports environment variable substitution for sensitive values.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, validator

from ..models import SourceKind


class DatastoreConfig(BaseModel):
    """Where vehicle records and audit outcomes are persisted."""
    backend: str = "json"
    database_url: Optional[str] = None
    auth_token: Optional[str] = None
    vehicles_path: str = "vehicles"
    outcomes_path: str = "outcomes"
    json_path: str = "./data/safety_audit.json"
    verify_ssl: bool = True
    max_concurrent_requests: int = 5
    timeout: int = 30

    @validator('backend')
    def validate_backend(cls, v):
        valid_backends = ['memory', 'json', 'firebase']
        if v.lower() not in valid_backends:
            raise ValueError(f'Datastore backend must be one of: {valid_backends}')
        return v.lower()

    @validator('database_url')
    def validate_database_url(cls, v):
        if v is None:
            return v
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Database URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('auth_token', always=True)
    def require_url_for_firebase(cls, v, values):
        if values.get('backend') == 'firebase' and not values.get('database_url'):
            raise ValueError('Firebase backend requires database_url')
        return v


class FeedsConfig(BaseModel):
    """Feed ingestion configuration."""
    skip_rows: int = 0
    columns: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)

    @validator('columns')
    def validate_source_kinds(cls, v):
        valid_kinds = [kind.value for kind in SourceKind]
        for kind in v:
            if kind not in valid_kinds:
                raise ValueError(f'Feed column overrides must use one of: {valid_kinds}')
        return v

    def column_aliases(self) -> Dict[SourceKind, Dict[str, List[str]]]:
        """Column overrides keyed by SourceKind."""
        return {SourceKind(kind): fields for kind, fields in self.columns.items()}


class OutputConfig(BaseModel):
    """Output configuration."""
    base_path: str = "./outputs"
    exports_folder: str = "exports"
    reports_folder: str = "reports"
    create_date_subfolder: bool = True
    file_prefix: str = "safety_audit"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = "./logs/safety_audit.log"
    max_size_mb: int = 50
    backup_count: int = 7
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @validator('level')
    def validate_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class BrandingConfig(BaseModel):
    """Branding configuration for reports."""
    organization: str = "Fleet Safety"
    primary_color: str = "#C8102E"
    secondary_color: str = "#000000"
    chart_colors: List[str] = [
        "#2E7D32", "#C8102E", "#9E9E9E", "#1565C0", "#F9A825", "#6D4C41"
    ]
    footer_text: str = "Vehicle safety audit - internal use only"


class RetryConfig(BaseModel):
    """Transport retry configuration for datastore requests."""
    max_attempts: int = 3
    initial_delay: float = 1
    backoff_multiplier: float = 2
    max_delay: float = 60


class AuditConfig(BaseModel):
    """Audit workflow configuration."""
    qr_prefix: str = ""


class AppConfig(BaseModel):
    """Main application configuration."""
    datastore: DatastoreConfig = DatastoreConfig()
    feeds: FeedsConfig = FeedsConfig()
    output: OutputConfig = OutputConfig()
    logging: LoggingConfig = LoggingConfig()
    branding: BrandingConfig = BrandingConfig()
    retry: RetryConfig = RetryConfig()
    audit: AuditConfig = AuditConfig()


_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)')


def substitute_env_vars(value: Any) -> Any:
    """
    Expand ${VAR_NAME} and $VAR_NAME references in every string of a
    parsed YAML document (dicts and lists are walked recursively).

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def replacer(match):
        var_name = match.group(1) or match.group(2)
        if var_name not in os.environ:
            raise ValueError(f"Environment variable '{var_name}' is not set")
        return os.environ[var_name]

    return _ENV_PATTERN.sub(replacer, value)


def load_config(config_path: str = "config/config.yaml") -> AppConfig:
    """
    Load and validate configuration from YAML file.

    An empty file yields the defaults of every section.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If environment variables are missing or validation fails
    """
    config_file = Path(config_path)
    if not config_file.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    raw_config = yaml.safe_load(config_file.read_text(encoding='utf-8')) or {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    return AppConfig(**substitute_env_vars(raw_config))


def create_output_directories(config: AppConfig) -> Tuple[Path, Path]:
    """
    Create the export, report and log directories.

    Returns:
        Tuple of (exports_path, reports_path)
    """
    output = config.output
    folders = [Path(output.base_path) / output.exports_folder, Path(output.base_path) / output.reports_folder]
    if output.create_date_subfolder:
        today = datetime.now().strftime("%d-%m-%Y")
        folders = [folder / today for folder in folders]

    for folder in folders:
        folder.mkdir(parents=True, exist_ok=True)
    if config.logging.file:
        Path(config.logging.file).parent.mkdir(parents=True, exist_ok=True)

    return folders[0], folders[1]
