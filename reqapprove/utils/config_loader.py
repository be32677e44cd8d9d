"""
Configuration Loader

Loads YAML configuration files and builds the immutable WorkflowConfig
injected into every component at process start.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml


EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

DEFAULT_HEADERS = (
    "Timestamp",
    "Department",
    "Requisition Title",
    "Requestor Name",
    "Email Address",
    "Description",
    "Estimated Cost",
    "1st Approval Status",
    "1st Approval Timestamp",
    "1st Approver",
    "2nd Approval Status",
    "2nd Approval Timestamp",
    "2nd Approver",
)


def is_valid_email(value: str) -> bool:
    return bool(value) and EMAIL_PATTERN.fullmatch(value) is not None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class ConfigLoader:
    """
    Load and validate YAML configuration files.
    """

    @staticmethod
    def load(config_path: str, required_keys: Optional[list] = None) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            config_path: Path to YAML file
            required_keys: List of keys that must be present in config

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If required keys are missing
            yaml.YAMLError: If YAML is invalid
        """
        path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        if config is None:
            config = {}

        if required_keys:
            missing = [key for key in required_keys if key not in config]
            if missing:
                raise ValueError(f"Missing required configuration keys: {missing}")

        return config

    @staticmethod
    def load_with_env_override(config_path: str, env_prefix: str = "REQAPPROVE_") -> Dict[str, Any]:
        """
        Load config and override with environment variables.

        For example, REQAPPROVE_BASE_URL overrides config['base_url'] and
        REQAPPROVE_SMTP__HOST overrides config['smtp']['host'].
        """
        config = ConfigLoader.load(config_path)

        for key, value in os.environ.items():
            if not key.startswith(env_prefix):
                continue
            path = key[len(env_prefix):].lower().split("__")
            target = config
            for part in path[:-1]:
                target = target.setdefault(part, {})
            target[path[-1]] = value

        return config


@dataclass(frozen=True)
class SMTPSettings:
    """Mail transport settings; an empty host selects the logging mailer"""
    host: Optional[str] = None
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    from_address: str = "approvals@localhost"
    use_tls: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SMTPSettings':
        data = data or {}
        return cls(
            host=data.get("host") or None,
            port=int(data.get("port", 587)),
            username=data.get("username") or None,
            password=data.get("password") or None,
            from_address=data.get("from_address", "approvals@localhost"),
            use_tls=_as_bool(data.get("use_tls", True)),
        )


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Process-wide workflow configuration.

    Built once at start-up; components receive it by injection and never
    recompute it per call.
    """
    stakeholders: Tuple[str, ...]
    base_url: str
    db_path: str = "data/requisitions.db"
    lock_timeout_seconds: float = 30.0
    identity_header: str = "X-Authenticated-Email"
    headers: Tuple[str, ...] = DEFAULT_HEADERS
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    metrics_enabled: bool = False
    metrics_port: int = 9090

    REQUIRED_KEYS = ("stakeholders", "base_url")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowConfig':
        """
        Build a validated config from a raw mapping.

        Raises:
            ValueError: On missing keys, an empty stakeholder list or an
                invalid stakeholder address
        """
        missing = [key for key in cls.REQUIRED_KEYS if not data.get(key)]
        if missing:
            raise ValueError(f"Missing required configuration keys: {missing}")

        stakeholders = _parse_stakeholders(data["stakeholders"])
        metrics = data.get("metrics") or {}

        return cls(
            stakeholders=stakeholders,
            base_url=str(data["base_url"]),
            db_path=str(data.get("db_path", cls.db_path)),
            lock_timeout_seconds=float(data.get("lock_timeout_seconds", 30.0)),
            identity_header=str(data.get("identity_header", cls.identity_header)),
            headers=tuple(data.get("headers") or DEFAULT_HEADERS),
            smtp=SMTPSettings.from_dict(data.get("smtp")),
            metrics_enabled=_as_bool(metrics.get("enabled", False)),
            metrics_port=int(metrics.get("port", 9090)),
        )

    @classmethod
    def from_file(cls, config_path: str) -> 'WorkflowConfig':
        return cls.from_dict(ConfigLoader.load_with_env_override(config_path))


def _parse_stakeholders(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        items: List[str] = [item for item in value.split(",")]
    else:
        items = list(value)

    stakeholders = []
    for item in items:
        email = str(item).strip().lower()
        if not email:
            continue
        if not is_valid_email(email):
            raise ValueError(f"Invalid stakeholder email: {item!r}")
        if email not in stakeholders:
            stakeholders.append(email)

    if not stakeholders:
        raise ValueError("At least one stakeholder is required")

    return tuple(stakeholders)
