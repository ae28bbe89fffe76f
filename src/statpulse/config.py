"""
Configuration for statpulse.

Runtime settings come from the environment (a .env file is honoured);
the endpoint list, anomaly policies and KPI targets come from a YAML file.
Anything missing or invalid raises ConfigurationError so the entry points
can stop before misreporting health.
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from statpulse.exceptions import ConfigurationError
from statpulse.models.endpoint import EndpointDescriptor
from statpulse.services.anomaly_detection_service import BaselinePolicy, default_policies
from statpulse.services.weekly_report_service import KpiTargets

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS_FILE = "config/endpoints.yaml"
DEFAULT_LOG_PATH = "data/health-log.json"
DEFAULT_REPORT_DIR = "reports"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """
    Environment-driven settings.

    - STATPULSE_ENDPOINTS_FILE: YAML endpoint configuration
    - STATPULSE_LOG_PATH: health log JSON file
    - STATPULSE_PROBE_TIMEOUT_SECONDS: per-probe timeout (default 30)
    - STATPULSE_REPORT_WINDOW_DAYS: weekly report window (default 7)
    - STATPULSE_BASELINE_WINDOW: trailing observations in a baseline (default 30)
    - STATPULSE_BASELINE_MIN_HISTORY: points needed for a verdict (default 5)
    - STATPULSE_REPORT_DIR: output directory for the file publisher
    - STATPULSE_METRICS_FILE: optional Prometheus textfile to write after a run
    - GITHUB_TOKEN / GITHUB_REPOSITORY / GITHUB_API_URL: issue publisher
    """

    endpoints_file: str = DEFAULT_ENDPOINTS_FILE
    log_path: str = DEFAULT_LOG_PATH
    probe_timeout_seconds: float = 30.0
    report_window_days: float = 7
    baseline_window: int = 30
    baseline_min_history: int = 5
    report_dir: str = DEFAULT_REPORT_DIR
    metrics_file: Optional[str] = None
    github_token: Optional[str] = None
    github_repository: Optional[str] = None
    github_api_url: str = "https://api.github.com"


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """Read settings from the environment after loading .env."""
    load_dotenv(dotenv_path=dotenv_path)

    settings = Settings(
        endpoints_file=os.getenv("STATPULSE_ENDPOINTS_FILE", DEFAULT_ENDPOINTS_FILE),
        log_path=os.getenv("STATPULSE_LOG_PATH", DEFAULT_LOG_PATH),
        probe_timeout_seconds=_env_float("STATPULSE_PROBE_TIMEOUT_SECONDS", 30.0),
        report_window_days=_env_float("STATPULSE_REPORT_WINDOW_DAYS", 7),
        baseline_window=_env_int("STATPULSE_BASELINE_WINDOW", 30),
        baseline_min_history=_env_int("STATPULSE_BASELINE_MIN_HISTORY", 5),
        report_dir=os.getenv("STATPULSE_REPORT_DIR", DEFAULT_REPORT_DIR),
        metrics_file=os.getenv("STATPULSE_METRICS_FILE") or None,
        github_token=os.getenv("GITHUB_TOKEN") or None,
        github_repository=os.getenv("GITHUB_REPOSITORY") or None,
        github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
    )

    if settings.probe_timeout_seconds <= 0:
        raise ConfigurationError("STATPULSE_PROBE_TIMEOUT_SECONDS must be positive")
    if settings.report_window_days <= 0:
        raise ConfigurationError("STATPULSE_REPORT_WINDOW_DAYS must be positive")
    return settings


@dataclass(frozen=True)
class EndpointConfig:
    """Parsed endpoint configuration file."""

    endpoints: List[EndpointDescriptor]
    anomaly_policies: Dict[str, BaselinePolicy] = field(default_factory=dict)
    kpi_targets: KpiTargets = field(default_factory=KpiTargets)


def load_endpoint_config(path, settings: Optional[Settings] = None) -> EndpointConfig:
    """
    Load and validate the endpoint configuration YAML.

    Expected layout::

        endpoints:
          - endpoint: Structures
            url: https://.../structure/dataflow/all/all/latest
            expected_content_type: "application/vnd\\.sdmx\\.structure\\+json"
            metric: {name: dataStructures, kind: json_count, path: data.dataStructures}
        anomaly_policies:
          responseTimeMs: {mode: percent, tolerance: 50, critical: 100}
          default: {mode: absolute, tolerance: 5, critical: 20}
        kpi_targets:
          uptime_pct: 99.5

    Baseline window and min history from ``settings`` apply to any policy
    that does not set them itself.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Endpoint configuration not found: {path}")
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read endpoint configuration {path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Endpoint configuration {path} must be a mapping")

    endpoints = _parse_endpoints(raw.get("endpoints"), path)
    policies = _parse_policies(raw.get("anomaly_policies") or {}, settings)

    try:
        targets = KpiTargets(**(raw.get("kpi_targets") or {}))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid kpi_targets in {path}: {e}")

    logger.info("Loaded %s endpoint(s) from %s", len(endpoints), path)
    return EndpointConfig(endpoints=endpoints, anomaly_policies=policies, kpi_targets=targets)


def _parse_endpoints(items, path: Path) -> List[EndpointDescriptor]:
    if not items:
        raise ConfigurationError(f"No endpoints configured in {path}")
    if not isinstance(items, list):
        raise ConfigurationError(f"'endpoints' in {path} must be a list")

    descriptors = []
    for item in items:
        try:
            descriptor = EndpointDescriptor.model_validate(item)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid endpoint entry in {path}: {e}")
        try:
            re.compile(descriptor.expected_content_type)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid content type pattern for {descriptor.endpoint.value}: {e}"
            )
        descriptors.append(descriptor)

    names = [d.endpoint for d in descriptors]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Duplicate endpoint names in {path}")
    return descriptors


def _parse_policies(items: dict, settings: Optional[Settings]) -> Dict[str, BaselinePolicy]:
    if not isinstance(items, dict):
        raise ConfigurationError("'anomaly_policies' must be a mapping of metric name to policy")

    defaults = {}
    if settings is not None:
        defaults = {
            "window_size": settings.baseline_window,
            "min_history": settings.baseline_min_history,
        }

    try:
        policies = {
            metric: replace(policy, **defaults) for metric, policy in default_policies().items()
        }
    except ValueError as e:
        raise ConfigurationError(f"Invalid baseline settings: {e}")
    for metric, entry in items.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Anomaly policy for {metric!r} must be a mapping")
        try:
            policies[metric] = BaselinePolicy(**{**defaults, **entry})
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid anomaly policy for {metric!r}: {e}")
    return policies
