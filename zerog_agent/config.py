"""
Configuration: connection, agent and advanced settings.

Loading priority:
  1. Project dir .zerog.conf.yml
  2. Git root .zerog.conf.yml
  3. Global ~/.zerog/config.yml (written with defaults if missing)

Environment overrides (ZEROG_*) are applied last.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".zerog"
CONFIG_FILE = CONFIG_DIR / "config.yml"
LOG_DIR = CONFIG_DIR / "logs"
PROJECT_CONFIG_NAME = ".zerog.conf.yml"

PROVIDERS = {"openai", "anthropic", "deepseek", "gemini", "ollama", "local"}

DEFAULT_BLOCKED_COMMANDS = ["rm -rf /", "mkfs", ":(){ :|:& };:"]


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    section: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "float", "bool", "list"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)

    @property
    def path(self) -> str:
        return f"{self.section}.{self.key}"


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    if isinstance(value, bool):
        return False, 0, "Must be an integer"
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_float_range(value: Any, min_val: float, max_val: float) -> tuple[bool, float, str]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return False, 0.0, "Must be a number"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_enum(value: Any, valid_values: set) -> tuple[bool, str, str]:
    """Validate value is in allowed set."""
    val_str = str(value).strip().lower()
    if val_str not in valid_values:
        return False, "", f"Must be one of: {', '.join(sorted(valid_values))}"
    return True, val_str, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_command_list(value: Any) -> tuple[bool, List[str], str]:
    if isinstance(value, str):
        raw_values = value.split(",")
    elif isinstance(value, list):
        raw_values = [str(item) for item in value]
    else:
        return False, [], "Must be a list or a comma-separated string"
    return True, [item.strip() for item in raw_values if item.strip()], ""


def _spec(section: str, key: str, field_name: str, description: str,
          value_type: str, default: Any, validator=None) -> ConfigFieldSpec:
    return ConfigFieldSpec(key=key, section=section, field_name=field_name,
                           description=description, value_type=value_type,
                           default=default, validator=validator)


# Configuration field registry with validation
CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {s.path: s for s in [
    _spec("connection", "provider", "provider", "Model provider", "str", "openai",
          lambda v: _validate_enum(v, PROVIDERS)),
    _spec("connection", "base-url", "base_url", "Provider base URL (empty for the provider default)",
          "str", ""),
    _spec("connection", "api-key", "api_key", "API key (prefer api-key-env)", "str", ""),
    _spec("connection", "api-key-env", "api_key_env", "Environment variable holding the API key",
          "str", ""),
    _spec("connection", "model", "model", "litellm model name", "str", "openai/gpt-4o-mini"),
    _spec("agent", "allow-terminal", "allow_terminal", "Allow the agent to run terminal commands",
          "bool", False, _validate_bool),
    _spec("agent", "auto-apply-diff", "auto_apply_diff", "Approve write_file actions without asking",
          "bool", False, _validate_bool),
    _spec("agent", "max-iterations", "max_iterations", "Maximum tasks completed per run",
          "int", 5, lambda v: _validate_int_range(v, 1, 100)),
    _spec("agent", "command-timeout", "command_timeout", "Command execution timeout in seconds",
          "int", 30, lambda v: _validate_int_range(v, 5, 300)),
    _spec("agent", "blocked-commands", "blocked_commands", "Command fragments that are never run",
          "list", list(DEFAULT_BLOCKED_COMMANDS), _validate_command_list),
    _spec("advanced", "temperature", "temperature", "Sampling temperature",
          "float", 0.7, lambda v: _validate_float_range(v, 0.0, 2.0)),
    _spec("advanced", "system-prompt", "system_prompt", "System prompt used in ask mode", "str", ""),
    _spec("advanced", "context-limit", "context_limit", "Maximum tokens per reply",
          "int", 4096, lambda v: _validate_int_range(v, 256, 200000)),
    _spec("advanced", "debug-mode", "debug_mode", "Enable verbose debug output",
          "bool", False, _validate_bool),
]}

# Bare keys ("max-iterations") resolve to their dotted path.
_KEY_ALIASES = {spec.key: path for path, spec in CONFIG_FIELDS.items()}


def resolve_key(key: str) -> Optional[str]:
    if key in CONFIG_FIELDS:
        return key
    return _KEY_ALIASES.get(key)


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    path = resolve_key(key)
    if path is None:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[path]
    if spec.validator:
        return spec.validator(value)

    # No validator: just coerce type
    if spec.value_type == "str":
        return True, "" if value is None else str(value), ""
    return True, value, ""


@dataclass
class Config:
    provider: str = "openai"
    base_url: str = ""
    api_key: str = ""
    api_key_env: str = ""
    model: str = "openai/gpt-4o-mini"
    allow_terminal: bool = False
    auto_apply_diff: bool = False
    max_iterations: int = 5
    command_timeout: int = 30
    blocked_commands: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS))
    temperature: float = 0.7
    system_prompt: str = ""
    context_limit: int = 4096
    debug_mode: bool = False
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = cls._find_git_root(project_path)
        config_loaded = False
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                config_loaded = True
                break

        if not config_loaded:
            config._config_source = str(CONFIG_FILE)
            config.save()

        config._apply_env()
        config.project_root = str(project_path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Ignoring unreadable config %s: %s", filepath, e)
            return
        if not isinstance(data, dict):
            _log.warning("Ignoring config %s: top level is not a mapping", filepath)
            return

        for path, spec in CONFIG_FIELDS.items():
            section = data.get(spec.section)
            if not isinstance(section, dict) or spec.key not in section:
                continue
            valid, coerced, error = validate_config_value(path, section[spec.key])
            if valid:
                setattr(self, spec.field_name, coerced)
            else:
                _log.warning("%s: invalid %s (%s); using default", filepath, path, error)

    def _apply_env(self):
        env_map = {
            "ZEROG_MODEL": "connection.model",
            "ZEROG_API_KEY": "connection.api-key",
            "ZEROG_BASE_URL": "connection.base-url",
            "ZEROG_MAX_ITERATIONS": "agent.max-iterations",
            "ZEROG_DEBUG": "advanced.debug-mode",
        }
        for env_var, path in env_map.items():
            val = os.environ.get(env_var)
            if not val:
                continue
            valid, coerced, error = validate_config_value(path, val)
            if valid:
                setattr(self, CONFIG_FIELDS[path].field_name, coerced)
            else:
                _log.warning("Ignoring %s: %s", env_var, error)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        data: Dict[str, Dict[str, Any]] = {"connection": {}, "agent": {}, "advanced": {}}
        for spec in CONFIG_FIELDS.values():
            data[spec.section][spec.key] = getattr(self, spec.field_name)
        return data

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    @property
    def config_source(self) -> str:
        return self._config_source

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        env_map = {
            "openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY",
            "deepseek": "DEEPSEEK_API_KEY", "gemini": "GEMINI_API_KEY",
        }
        env_var = env_map.get(self.provider)
        return os.environ.get(env_var) if env_var else None

    def get_llm_kwargs(self) -> dict:
        """Return kwargs dict for the LLMAdapter constructor."""
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.context_limit,
            "api_base": self.base_url or None,
            "api_key": self.resolve_api_key(),
            "system_prompt": self.system_prompt,
        }

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None

    def get_config_value(self, key: str) -> Any:
        """Get configuration value by key."""
        path = resolve_key(key)
        if path is None:
            return None
        spec = CONFIG_FIELDS[path]
        return getattr(self, spec.field_name, spec.default)

    def set_config_value(self, key: str, value: Any, persist: bool = True) -> tuple[bool, str]:
        """
        Set configuration value with validation.

        Returns:
            (success, error_message)
        """
        is_valid, coerced_value, error_msg = validate_config_value(key, value)
        if not is_valid:
            return False, error_msg

        spec = CONFIG_FIELDS[resolve_key(key)]
        setattr(self, spec.field_name, coerced_value)
        if persist:
            self.save()
        return True, ""

    def reset_config_value(self, key: str) -> tuple[bool, str]:
        path = resolve_key(key)
        if path is None:
            return False, f"Unknown configuration key: {key}"
        spec = CONFIG_FIELDS[path]
        default = list(spec.default) if isinstance(spec.default, list) else spec.default
        setattr(self, spec.field_name, default)
        self.save()
        return True, ""

    def summary(self) -> Dict[str, Any]:
        """Flattened view for display; the API key is masked."""
        flat = {path: getattr(self, spec.field_name) for path, spec in CONFIG_FIELDS.items()}
        if flat.get("connection.api-key"):
            flat["connection.api-key"] = "***"
        flat["source"] = self._config_source
        return flat
