import os
import copy
import json
import re
from pathlib import Path
from typing import Dict, Any, List, Optional
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate as json_validate
from mcr.utils.exceptions import ConfigError
from mcr.utils.logging import configure_logging, get_logger

# ${VAR} anywhere in a string, or a whole value written as $VAR
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_WHOLE_ENV_REFERENCE = re.compile(r"^\$([A-Za-z_][A-Za-z0-9_]*)$")

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "development": {"type": "boolean"},
        "llm": {
            "type": "object",
            "properties": {
                "model": {"type": "string", "minLength": 1},
                "api_key": {"type": "string"},
                "temperature": {"type": "number", "minimum": 0}
            }
        },
        "translation": {
            "type": "object",
            "properties": {
                "strategies": {"type": "array", "items": {"type": "string"}, "minItems": 1},
                "max_attempts": {"type": "integer", "minimum": 1},
                "retry_delay": {"type": "number", "minimum": 0}
            }
        },
        "reasoning": {
            "type": "object",
            "properties": {"max_steps": {"type": "integer", "minimum": 0}}
        },
        "engine": {
            "type": "object",
            "properties": {
                "max_depth": {"type": "integer", "minimum": 1},
                "max_solutions": {"type": ["integer", "null"], "minimum": 1}
            }
        },
        "logging": {
            "type": "object",
            "properties": {"log_file": {"type": "string", "minLength": 1}}
        }
    }
}

def get_default_config() -> Dict[str, Any]:
    """Returns default configuration settings."""
    return {
        "development": True,  # DEBUG logging for mcr loggers
        "llm": {
            "model": "gemini-2.0-flash",
            "api_key": "",  # Falls back to GEMINI_API_KEY
            "temperature": 0.0
        },
        "translation": {
            "strategies": ["direct", "structured"],
            "max_attempts": 2,
            "retry_delay": 0.5
        },
        "reasoning": {
            "max_steps": 5
        },
        "engine": {
            "max_depth": 200,
            "max_solutions": 100
        },
        "logging": {
            "log_file": "mcr.log"
        }
    }

def load_env_vars(env_path: Optional[Path] = None) -> None:
    """Read KEY=VALUE lines from .env; variables already set in the process win."""
    env_path = env_path or Path.cwd() / '.env'
    if not env_path.exists():
        get_logger(__name__).debug(f"No .env file at {env_path}, using process environment only")
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            os.environ.setdefault(key.strip(), value)

def _substitute(value: Any, missing: List[str]) -> Any:
    if isinstance(value, dict):
        return {key: _substitute(item, missing) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute(item, missing) for item in value]
    if not isinstance(value, str):
        return value

    whole = _WHOLE_ENV_REFERENCE.match(value)
    if whole:
        name = whole.group(1)
        if name not in os.environ:
            missing.append(name)
            return value
        return os.environ[name]

    def lookup(match: re.Match) -> str:
        name = match.group(1)
        if name not in os.environ:
            missing.append(name)
            return match.group(0)
        return os.environ[name]

    return _ENV_REFERENCE.sub(lookup, value)

def replace_env_vars(config: Dict) -> Dict:
    """Replace ${VAR} and $VAR references throughout the config.

    Raises:
        ConfigError: Listing every referenced variable that is not set
    """
    missing: List[str] = []
    result = _substitute(config, missing)
    if missing:
        names = "\n".join(f"- {name}" for name in dict.fromkeys(missing))
        raise ConfigError(f"\nMissing required environment variables:\n{names}\n\nPlease set these in your .env file.")
    return result

def merge_with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in any section or key missing from a loaded config."""
    def merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                merge(base[key], value)
            else:
                base[key] = copy.deepcopy(value)
        return base

    return merge(get_default_config(), config)

def validate_config(config: Dict[str, Any]) -> None:
    """Check value types and bounds of the known sections.

    Raises:
        ConfigError: If a known key has the wrong type or is out of range
    """
    try:
        json_validate(instance=config, schema=CONFIG_SCHEMA)
    except SchemaValidationError as e:
        location = ".".join(str(part) for part in e.absolute_path) or "config"
        raise ConfigError(f"Invalid configuration at {location}: {e.message}") from e

def ensure_config_exists() -> Path:
    """Create default config if it doesn't exist. Returns config path."""
    config_path = Path(__file__).parent.parent / "config.json"
    if not config_path.exists():
        logger = get_logger(__name__)
        logger.warning(f"Config file not found at {config_path}")
        with open(config_path, 'w') as f:
            json.dump(get_default_config(), f, indent=2)
        logger.info(f"Created default config at {config_path}")
    return config_path

def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load config.json, substitute environment variables and fill in defaults.

    Raises:
        ConfigError: If the file is missing or unreadable, a referenced
            environment variable is unset, or a value is invalid
    """
    if config_path is None:
        config_path = ensure_config_exists()
    load_env_vars()
    try:
        with open(config_path, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found at {config_path}")
    except json.JSONDecodeError:
        raise ConfigError(f"Error decoding json at file: {config_path}")
    except OSError as e:
        raise ConfigError(f"Error loading configuration: {str(e)}")

    if not isinstance(config, dict):
        raise ConfigError(f"Configuration at {config_path} must be a JSON object")
    config = merge_with_defaults(replace_env_vars(config))
    validate_config(config)
    return config

def load_config_and_logging(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the configuration and configure logging from its settings."""
    config = load_config(config_path)
    configure_logging(
        development=is_dev_mode(config),
        log_file=Path(get_config(config, "logging.log_file", "mcr.log"))
    )
    return config

def get_config(config: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a value by dotted key, e.g. 'translation.max_attempts'."""
    node: Any = config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node

def set_config(config: Dict[str, Any], key: str, value: Any) -> None:
    """Set a value by dotted key, creating intermediate sections."""
    parts = key.split('.')
    node = config
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value

def is_dev_mode(config: Dict[str, Any]) -> bool:
    return bool(config.get("development", False))

def copy_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy so a session's config cannot be changed through another's."""
    return copy.deepcopy(config)
