"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict
from urllib.parse import urlparse

import yaml

from models import PendingScope

DEFAULT_CONFIG: Dict[str, Any] = {
    'chatgpt': {
        'base_url': 'https://chatgpt.com',
        'access_token': '${CHATGPT_ACCESS_TOKEN}',
        'verify_ssl': True
    },
    'export': {
        'output_directory': './chatgpt-export',
        'filename_prefix': 'chatgpt',
        'show_timestamps': False,
        'all_roles': False,
        'show_image_prompts': False,
        'pending_scope': PendingScope.SHARED.value,
        'image_max_width': 360,
        'untitled_placeholder': 'Untitled',
        'timestamp_format': '%Y-%m-%d %H:%M:%S',
        'progress_bars': True
    },
    'advanced': {
        'request_timeout': 30,
        'max_retries': 3,
        'retry_backoff_factor': 2.0,
        'rate_limit': 0.0
    },
    'logging': {
        'level': None,
        'file': None
    }
}


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Values missing from the file are filled from DEFAULT_CONFIG.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(cls._merge_defaults(config_data))

    @classmethod
    def defaults(cls) -> Dict[str, Any]:
        """Default configuration with environment variables substituted."""
        return cls._substitute_env_vars_recursive(copy.deepcopy(DEFAULT_CONFIG))

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration values.

        The access token is not required here; it is only needed when a
        conversation is fetched from the API.

        Raises:
            ValueError: If validation fails
        """
        base_url = get_nested(config, 'chatgpt.base_url')
        if base_url:
            cls._validate_url(base_url, 'chatgpt.base_url')

        pending_scope = get_nested(config, 'export.pending_scope', PendingScope.SHARED.value)
        try:
            PendingScope(pending_scope)
        except ValueError:
            raise ValueError(
                f"export.pending_scope must be one of: {[s.value for s in PendingScope]}"
            )

        for flag in ('show_timestamps', 'all_roles', 'show_image_prompts', 'progress_bars'):
            value = get_nested(config, f'export.{flag}', False)
            if not isinstance(value, bool):
                raise ValueError(f"export.{flag} must be a boolean")

        image_width = get_nested(config, 'export.image_max_width', 360)
        if not isinstance(image_width, int) or isinstance(image_width, bool) or image_width < 1:
            raise ValueError("export.image_max_width must be a positive integer")

        cls._validate_required_field(config, 'export.output_directory')
        output_dir = get_nested(config, 'export.output_directory')
        if output_dir and os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

        prefix = get_nested(config, 'export.filename_prefix', 'chatgpt')
        if not isinstance(prefix, str):
            raise ValueError("export.filename_prefix must be a string")

        timeout = get_nested(config, 'advanced.request_timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', 3)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)
        for section in ('chatgpt', 'export', 'logging'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'output_dir', None):
            merged['export']['output_directory'] = args.output_dir

        for flag in ('show_timestamps', 'all_roles', 'show_image_prompts'):
            value = getattr(args, flag, None)
            if value is not None:
                merged['export'][flag] = value

        if getattr(args, 'pending_scope', None):
            merged['export']['pending_scope'] = args.pending_scope

        if getattr(args, 'base_url', None):
            merged['chatgpt']['base_url'] = args.base_url

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0)
        if verbose:
            merged['logging']['level'] = 'DEBUG' if verbose >= 2 else 'INFO'

        return merged

    @classmethod
    def _merge_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values
        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(url)
        if not parsed.scheme or parsed.scheme not in ['http', 'https']:
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "chatgpt.base_url")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config
    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'DEFAULT_CONFIG', 'get_nested']
