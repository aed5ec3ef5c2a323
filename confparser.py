"""
Simple configuration file parser for plain .conf files, with environment overrides.

Format:
- Lines starting with # are comments
- Empty lines are ignored
- Key-value pairs: key = value
- List values: key = value1, value2, value3
- Boolean values: key = true/false/yes/no/1/0
- Nested sections not supported (flat structure)

Environment variables (and a .env file next to the config) take precedence
over values from the file, so secrets can stay out of it.
"""

import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv


def parse_value(value: str) -> Any:
    """Parse a string value into appropriate Python type.

    Args:
        value: Raw string value from config file or environment

    Returns:
        Parsed value (bool, int, float, list, or string)
    """
    value = value.strip()

    # Empty value
    if not value:
        return ''

    # Boolean values
    if value.lower() in ('true', 'yes', '1'):
        return True
    if value.lower() in ('false', 'no', '0'):
        return False

    # Try integer
    try:
        return int(value)
    except ValueError:
        pass

    # Try float
    try:
        return float(value)
    except ValueError:
        pass

    # Check for list (comma-separated values)
    if ',' in value:
        items = [item.strip() for item in value.split(',')]
        # Filter out empty strings
        items = [item for item in items if item]
        return items

    return value


def load_config(filepath: str, defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Load configuration from a plain .conf file.

    Args:
        filepath: Path to the configuration file
        defaults: Optional dictionary of default values

    Returns:
        Dictionary with configuration values
    """
    config = dict(defaults) if defaults else {}

    if not os.path.exists(filepath):
        return config

    with open(filepath, 'r') as f:
        for line in f:
            # Strip whitespace
            line = line.strip()

            # Skip empty lines and comments
            if not line or line.startswith('#'):
                continue

            # Parse key=value
            if '=' not in line:
                continue

            key, _, value = line.partition('=')
            key = key.strip()

            # Skip empty keys
            if not key:
                continue

            config[key] = parse_value(value)

    return config


def apply_env_overrides(config: Dict[str, Any], env_map: Dict[str, str],
                        dotenv_path: Optional[str] = None) -> Dict[str, Any]:
    """Override config values from environment variables.

    Args:
        config: Configuration dictionary, updated in place
        env_map: Environment variable name -> config key
        dotenv_path: Optional .env file loaded first (existing variables win)

    Returns:
        The updated configuration dictionary
    """
    if dotenv_path and os.path.exists(dotenv_path):
        load_dotenv(dotenv_path, override=False)

    for env_name, key in env_map.items():
        value = os.environ.get(env_name)
        if value is None or not value.strip():
            continue
        # Secrets and IDs stay strings, everything else is typed like the file
        if isinstance(config.get(key), str) or key.endswith(('_token', '_id', '_file')):
            config[key] = value.strip()
        else:
            config[key] = parse_value(value)

    return config


def as_list(value: Any) -> list:
    """Normalize a config value that may hold one item, several or none."""
    if isinstance(value, list):
        return value
    if value in ('', None):
        return []
    return [item.strip() for item in str(value).split(',') if item.strip()]


def create_default_config(filepath: str, template: str):
    """Create a default configuration file from a template string.

    Args:
        filepath: Path where config file should be created
        template: Template string content for the config file
    """
    with open(filepath, 'w') as f:
        f.write(template)
