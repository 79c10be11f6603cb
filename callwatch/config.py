import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from loguru import logger

from .compat_logger import CompatibleLogger, LEVELS, normalize_level
from .exceptions import ConfigError
from .rules import RuleSet
from .scope import DEFAULT_CONTENT_ID

# Accepted spellings of CALLWATCH_LINE_SEPARATOR
LINE_SEPARATORS: Dict[str, str] = {
    "LF": "\n",
    "CRLF": "\r\n",
    "CR": "\r",
    "OS": os.linesep,
}


@dataclass
class ProfilerConfig:
    """
    Runtime settings of the profiler.

    enabled=False keeps every Profiler quiet: its logger is raised to WARN,
    so the INFO gate closes and no wrapping or reporting happens.
    """

    enabled: bool = True
    report_level: str = "INFO"
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    content_id: str = DEFAULT_CONTENT_ID
    line_separator: str = os.linesep
    delimiter: Optional[str] = None
    rules_file: Optional[Path] = None
    sweep_roots: List[str] = field(default_factory=list)
    scripts_dir: Path = Path("./scripts")

    def __post_init__(self):
        if self.log_file is not None:
            self.log_file = Path(self.log_file)
        if self.rules_file is not None:
            self.rules_file = Path(self.rules_file)
        self.scripts_dir = Path(self.scripts_dir)
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError for values the profiler cannot work with."""
        for field_name in ("report_level", "log_level"):
            value = getattr(self, field_name)
            try:
                setattr(self, field_name, normalize_level(value))
            except ValueError:
                raise ConfigError(
                    f"Invalid {field_name}: {value}. Must be one of {', '.join(LEVELS)}",
                    field_name=field_name,
                    field_value=value,
                )

        if not self.content_id or not isinstance(self.content_id, str):
            raise ConfigError("content_id must be a non-empty string", field_name="content_id",
                              field_value=self.content_id)

        if self.line_separator not in LINE_SEPARATORS.values():
            raise ConfigError(
                "line_separator must be one of LF, CRLF, CR",
                field_name="line_separator",
                field_value=repr(self.line_separator),
            )

        if self.delimiter == "":
            self.delimiter = None

        if self.rules_file is not None and not self.rules_file.is_file():
            raise ConfigError("Rules file not found", field_name="rules_file", field_value=self.rules_file)

    def make_logger(self, name: Optional[str] = None, sink=None) -> CompatibleLogger:
        """Report logger honouring enabled/report_level."""
        level = self.report_level if self.enabled else "WARN"
        return CompatibleLogger(name=name, sink=sink, level=level)

    def load_rules(self) -> RuleSet:
        """Rules from rules_file (default rules when unset), plus the configured sweep roots."""
        rules = RuleSet.from_json(self.rules_file) if self.rules_file else RuleSet()
        for root in self.sweep_roots:
            if root not in rules.sweep_roots:
                rules.sweep_roots.append(root)
        return rules

    @classmethod
    def from_env(cls, env_path: Union[str, Path] = ".env") -> "ProfilerConfig":
        """Load settings from .env and CALLWATCH_* environment variables."""
        if Path(env_path).exists():
            load_dotenv(dotenv_path=env_path)

        try:
            separator_name = os.getenv("CALLWATCH_LINE_SEPARATOR", "OS").upper()
            if separator_name not in LINE_SEPARATORS:
                logger.warning(f"Unknown line separator '{separator_name}', using the OS default")
                separator_name = "OS"

            sweep_roots = [
                r.strip() for r in os.getenv("CALLWATCH_SWEEP_ROOTS", "").split(",") if r.strip()
            ]

            config_dict: Dict[str, Any] = {
                "enabled": _parse_bool(os.getenv("CALLWATCH_ENABLED"), True),
                "report_level": os.getenv("CALLWATCH_REPORT_LEVEL", "INFO"),
                "log_level": os.getenv("CALLWATCH_LOG_LEVEL", "INFO"),
                "log_file": os.getenv("CALLWATCH_LOG_FILE") or None,
                "content_id": os.getenv("CALLWATCH_CONTENT_ID", DEFAULT_CONTENT_ID),
                "line_separator": LINE_SEPARATORS[separator_name],
                "delimiter": os.getenv("CALLWATCH_DELIMITER") or None,
                "rules_file": os.getenv("CALLWATCH_RULES_FILE") or None,
                "sweep_roots": sweep_roots,
                "scripts_dir": os.getenv("CALLWATCH_SCRIPTS_DIR", "./scripts"),
            }
            return cls(**config_dict)

        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e


def _parse_bool(value: Optional[Union[str, bool]], default: bool = False) -> bool:
    """Parse a boolean from a string or bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes", "y", "on")
