"""
Startup Configuration Checks

Required settings block startup. Optional ones only degrade a feature
(checkpoints fall back to memory, the worker cannot run) and are
reported as warnings unless strict mode is on.
"""
import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import pytz

from callqueue.core.config import ConfigManager

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of a single configuration check."""
    component: str
    setting: str
    is_valid: bool
    message: str
    warning: bool = False


# (component, env var, what it enables)
REQUIRED = [
    ("store", "SUPABASE_URL", "Supabase project URL"),
    ("store", "SUPABASE_SERVICE_KEY", "Supabase service key"),
]

OPTIONAL = [
    ("checkpoint", "REDIS_URL", "shared scan checkpoints (in-memory fallback)"),
    ("worker", "CALL_LOG_DIR", "call-log export directory for the scan worker"),
    ("worker", "SCAN_OWNER_ID", "team member the scan worker scans for"),
]


class ConfigValidator:
    """Runs every startup check and collects the results."""

    def __init__(self, strict: bool = False, config: Optional[ConfigManager] = None):
        self.strict = strict
        self.config = config
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []
        checks: List[Callable[[], None]] = [
            self._check_required,
            self._check_optional,
            self._check_call_log_dir,
            self._check_timezone,
        ]
        for check in checks:
            check()
        return all(r.is_valid for r in self.results), self.results

    def _check_required(self) -> None:
        for component, env_var, description in REQUIRED:
            if os.getenv(env_var):
                self._ok(component, env_var, f"{description} configured")
            else:
                self.results.append(ValidationResult(
                    component, env_var, False, f"{env_var} must be set ({description})"
                ))

    def _check_optional(self) -> None:
        for component, env_var, description in OPTIONAL:
            if os.getenv(env_var):
                self._ok(component, env_var, f"{description} configured")
            else:
                self._warn(component, env_var, f"WARNING: {env_var} not set, no {description}")

    def _check_call_log_dir(self) -> None:
        path = os.getenv("CALL_LOG_DIR")
        if path and not os.path.isdir(path):
            self._warn("worker", "CALL_LOG_DIR", f"WARNING: {path} is not a directory")

    def _check_timezone(self) -> None:
        if self.config is None:
            return
        name = self.config.get("scan.local_timezone")
        if name and name not in pytz.all_timezones_set:
            self._warn("scan", "scan.local_timezone", f"WARNING: unknown timezone {name!r}, UTC will be used")

    def _ok(self, component: str, setting: str, message: str) -> None:
        self.results.append(ValidationResult(component, setting, True, message))

    def _warn(self, component: str, setting: str, message: str) -> None:
        self.results.append(ValidationResult(component, setting, not self.strict, message, warning=True))

    def log_results(self) -> None:
        for r in self.results:
            if not r.is_valid:
                logger.error(f"[{r.component}] {r.message}")
            elif r.warning:
                logger.warning(f"[{r.component}] {r.message}")
            else:
                logger.debug(f"[{r.component}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None
        return "Configuration errors:\n" + "\n".join(f"  - {r.setting}: {r.message}" for r in errors)


def validate_config_on_startup(strict: bool = False, config: Optional[ConfigManager] = None) -> None:
    """
    Raises:
        RuntimeError: If a required setting (or, in strict mode, any
            optional one) is missing
    """
    validator = ConfigValidator(strict=strict, config=config)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("Configuration validated")
