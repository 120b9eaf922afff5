"""
Configuration management for stageflow.

This module handles loading and validation of the YAML file that describes
the external tools: where they are installed, which staging folder they
share with us, how completion is detected and what they produce.
"""

import yaml
import logging
import os
from pathlib import Path
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field

from .models import RunMode

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "stageflow.yaml"
ADAPTERS = ("pureraw", "zerene", "hugin", "custom")
MAX_TIMEOUT_MINUTES = 30


def _expand(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return os.path.expanduser(os.path.expandvars(str(path).strip().strip("'\"")))


@dataclass
class ToolConfig:
    """Configuration for a single external tool."""
    name: str
    adapter: str
    executable: str
    staging_dir: Path
    mode: Optional[RunMode] = None
    timeout_minutes: float = 2.0
    poll_interval: float = 10.0
    settle_time: Optional[float] = None
    sentinel: Optional[str] = "stopjob"
    allow: List[str] = field(default_factory=list)
    require: List[str] = field(default_factory=list)
    args: List[str] = field(default_factory=list)
    artifacts: List[Dict[str, Any]] = field(default_factory=list)
    success_codes: List[int] = field(default_factory=lambda: [0])
    version: Optional[str] = None
    tools_dir: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'ToolConfig':
        """Create ToolConfig from dictionary (defaults already merged)."""
        mode = data.get('mode')
        return cls(
            name=name,
            adapter=data.get('adapter', name),
            executable=_expand(data['executable']),
            staging_dir=Path(_expand(data['staging_dir'])),
            mode=RunMode(mode) if mode else None,
            timeout_minutes=float(data.get('timeout_minutes', 2.0)),
            poll_interval=float(data.get('poll_interval', 10.0)),
            settle_time=float(data['settle_time']) if data.get('settle_time') is not None else None,
            sentinel=data.get('sentinel', 'stopjob'),
            allow=list(data.get('allow', [])),
            require=list(data.get('require', [])),
            args=[str(a) for a in data.get('args', [])],
            artifacts=list(data.get('artifacts', [])),
            success_codes=[int(c) for c in data.get('success_codes', [0])],
            version=str(data['version']) if data.get('version') is not None else None,
            tools_dir=_expand(data.get('tools_dir')),
            options=dict(data.get('options', {})),
        )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60.0


@dataclass
class StageflowConfiguration:
    """Complete tool configuration."""
    tools: Dict[str, ToolConfig]
    log_file: Optional[str] = None
    log_level: str = "INFO"

    def tool_names(self) -> List[str]:
        return sorted(self.tools)


class ConfigurationLoader:
    """YAML configuration file loader and validator."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialize configuration loader."""
        self.config_path = Path(config_path)
        self.config_dir = self.config_path.parent

    def load_configuration(self) -> StageflowConfiguration:
        """Load and validate YAML configuration."""
        logger.info(f"Loading configuration from {self.config_path}")

        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        with open(self.config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        self._validate_configuration(raw_config)

        defaults = raw_config.get('defaults', {}) or {}
        tools = {}
        for name, tool_data in raw_config['tools'].items():
            merged = {**defaults, **(tool_data or {})}
            tools[name] = ToolConfig.from_dict(name, merged)
            self._validate_tool(tools[name])

        logging_section = raw_config.get('logging', {}) or {}
        config = StageflowConfiguration(
            tools=tools,
            log_file=logging_section.get('file'),
            log_level=logging_section.get('level', 'INFO'),
        )
        logger.info(f"Configuration loaded: {len(tools)} tool(s) ({', '.join(config.tool_names())})")
        return config

    def _validate_configuration(self, config: Dict[str, Any]) -> None:
        """Validate required configuration sections."""
        if not isinstance(config, dict):
            raise ValueError("Configuration must be a mapping")
        if 'tools' not in config or not config['tools']:
            raise ValueError("Missing required section: tools")
        if not isinstance(config['tools'], dict):
            raise ValueError("Section 'tools' must map tool names to settings")

        defaults = config.get('defaults', {}) or {}
        for name, tool in config['tools'].items():
            merged = {**defaults, **(tool or {})}
            for required in ('executable', 'staging_dir'):
                if not merged.get(required):
                    raise ValueError(f"Tool '{name}': missing required field '{required}'")
            adapter = merged.get('adapter', name)
            if adapter not in ADAPTERS:
                raise ValueError(f"Tool '{name}': unknown adapter '{adapter}' (expected one of {', '.join(ADAPTERS)})")
            mode = merged.get('mode')
            if mode is not None and mode not in [m.value for m in RunMode]:
                raise ValueError(f"Tool '{name}': invalid mode '{mode}'")

    def _validate_tool(self, tool: ToolConfig) -> None:
        """Validate value ranges for one tool."""
        if not 0 <= tool.timeout_minutes <= MAX_TIMEOUT_MINUTES:
            raise ValueError(
                f"Tool '{tool.name}': invalid timeout {tool.timeout_minutes} - 0 to {MAX_TIMEOUT_MINUTES} minutes allowed"
            )
        if tool.poll_interval <= 0:
            raise ValueError(f"Tool '{tool.name}': poll_interval must be > 0")
        if tool.settle_time is not None and tool.settle_time < 0:
            raise ValueError(f"Tool '{tool.name}': settle_time must be >= 0")
        for i, matcher in enumerate(tool.artifacts):
            if not isinstance(matcher, dict):
                raise ValueError(f"Tool '{tool.name}': artifact {i} must be a mapping")
        if not Path(tool.executable).exists():
            logger.warning(f"Tool '{tool.name}': executable not found: {tool.executable}")
        if not tool.staging_dir.is_dir():
            logger.warning(f"Tool '{tool.name}': staging folder not found: {tool.staging_dir}")


class ConfigurationManager:
    """Locate, load and query the tool configuration."""

    SEARCH_ENV = "STAGEFLOW_CONFIG"

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = self.find_config(config_path)
        self._config: Optional[StageflowConfiguration] = None

    @classmethod
    def find_config(cls, config_path: Optional[Union[str, Path]] = None) -> Path:
        """Explicit path, then $STAGEFLOW_CONFIG, then ./stageflow.yaml, then ~/.config/stageflow/."""
        if config_path:
            return Path(config_path)
        env = os.environ.get(cls.SEARCH_ENV)
        if env:
            return Path(env)
        candidates = [
            Path.cwd() / DEFAULT_CONFIG_NAME,
            Path.home() / ".config" / "stageflow" / DEFAULT_CONFIG_NAME,
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate
        return candidates[0]

    @property
    def config(self) -> StageflowConfiguration:
        if self._config is None:
            self._config = ConfigurationLoader(self.config_path).load_configuration()
        return self._config

    def get_tool(self, name: str) -> ToolConfig:
        try:
            return self.config.tools[name]
        except KeyError:
            raise KeyError(
                f"Unknown tool '{name}'; configured: {', '.join(self.config.tool_names()) or 'none'}"
            ) from None
