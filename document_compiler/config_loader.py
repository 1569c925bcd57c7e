"""
Configuration loading module for the Document Compiler.

Handles loading settings from a YAML file, merging with defaults,
resolving provider API keys, and making file paths absolute.
"""
import copy
import yaml
import os
from dotenv import load_dotenv
import logging
from typing import Dict, Any, Optional

from .exceptions import ConfigError, ConfigNotFoundError, ConfigParsingError

# Load .env file if present (for API keys primarily)
script_dir = os.path.dirname(__file__)
dotenv_path = os.path.join(script_dir, '.env')
load_dotenv(dotenv_path)

logger = logging.getLogger(__name__)

#: Default configuration values.
DEFAULT_CONFIG: Dict[str, Any] = {
    'default_provider': 'gemini',
    'gemini': {
        'api_key': 'GEMINI_API_KEY', # Name of the env var holding the key
        'model_name': 'gemini-2.5-flash-lite',
        'temperature': 0.4,
        'max_output_tokens': 8192,
        'request_timeout': 600
    },
    'anthropic': {
        'api_key': 'ANTHROPIC_API_KEY',
        'model_name': 'claude-sonnet-4',
        'temperature': 0.4,
        'max_tokens': 8192
    },
    'context': {
        'min_exchanges': 5,
        'max_tokens': 4000
    },
    'compilation': {
        'max_retries': 3,
        'retry_delay_sec': 2.0,
        'continue_instruction': (
            "Continue filling in the remaining fields of the document. "
            "Replace every remaining placeholder."
        )
    },
    'merge': {
        'require_unique_match': False
    },
    'storage': {
        'snapshot_dir': 'snapshots'
    },
    'logging': {
        'level': 'INFO',
        'log_file': 'logs/document_compiler.log',
        'log_to_console': True,
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'max_bytes': 5 * 1024 * 1024,
        'backup_count': 3
    }
}

#: Provider section -> default environment variable for its key.
PROVIDER_KEY_ENV_VARS = {
    'gemini': 'GEMINI_API_KEY',
    'anthropic': 'ANTHROPIC_API_KEY',
}

def _resolve_api_key(key_setting: Optional[str], default_env_var: str) -> Optional[str]:
    """
    Resolves an API key based on the config setting, prioritizing environment variables.

    Resolution logic:
    1. If key_setting is provided, it is treated as the name of an environment variable.
    2. If that variable is not set, it falls back to default_env_var.
    3. A value that looks like a literal key is accepted with a warning.

    Args:
        key_setting: The value from the configuration, expected to be an environment variable name.
        default_env_var: The default environment variable name to check.

    Returns:
        The resolved API key string, or None if resolution fails.
    """
    # Heuristic to detect if a key is hardcoded in the config
    if key_setting and ' ' not in key_setting and len(key_setting) > 20:
        env_value = os.getenv(key_setting)
        if env_value:
            return env_value
        logger.warning(
            f"An API key appears to be hardcoded in the configuration ('{key_setting[:4]}...'). "
            f"Use an environment variable instead (e.g. set {default_env_var})."
        )
        return key_setting

    env_var_name = key_setting if key_setting else default_env_var
    api_key = os.getenv(env_var_name)

    if not api_key and key_setting:
        api_key = os.getenv(default_env_var)

    return api_key

def load_config(config_path: str = 'config/config.yaml', required: bool = False) -> Dict[str, Any]:
    """
    Loads configuration from a YAML file, merges it over the defaults, resolves
    the provider API keys and makes file paths absolute.

    Args:
        config_path: Path to the YAML configuration file. Relative paths are
                     resolved against the directory containing this module.
        required: When True a missing file raises instead of falling back to defaults.

    Returns:
        A dictionary containing the loaded and processed configuration.

    Raises:
        ConfigNotFoundError: If the file is required but not found.
        ConfigParsingError: If the config file cannot be parsed.
        ConfigError: For other configuration-related issues.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    abs_config_path = os.path.join(script_dir, config_path)

    if not os.path.exists(abs_config_path):
        if required:
            raise ConfigNotFoundError(f"Configuration file '{abs_config_path}' not found.")
        logger.warning(f"Configuration file '{abs_config_path}' not found. Using default settings.")
    else:
        try:
            with open(abs_config_path, 'r', encoding='utf-8') as f:
                user_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigParsingError(f"Error parsing configuration file '{abs_config_path}': {e}") from e
        except OSError as e:
            raise ConfigError(f"Error reading configuration file '{abs_config_path}': {e}") from e

        if user_config:
            if not isinstance(user_config, dict):
                raise ConfigParsingError(
                    f"Configuration file '{abs_config_path}' must contain a mapping at the top level."
                )
            # Section-level merge: user keys override defaults inside each section
            for section, settings in user_config.items():
                if section in config and isinstance(config[section], dict) and isinstance(settings, dict):
                    config[section].update(settings)
                else:
                    config[section] = settings

    for provider, default_env_var in PROVIDER_KEY_ENV_VARS.items():
        if provider not in config:
            continue
        resolved_key = _resolve_api_key(config[provider].get('api_key'), default_env_var)
        if resolved_key:
            config[provider]['resolved_key'] = resolved_key
            logger.info(f"{provider.capitalize()} API key resolved successfully.")
        else:
            logger.warning(f"{provider.capitalize()} API key could not be resolved. "
                           f"{provider.capitalize()} provider will not be available.")

    # Paths in the config are relative to the package directory
    snapshot_dir = config.get('storage', {}).get('snapshot_dir')
    if snapshot_dir:
        config['storage']['snapshot_dir'] = os.path.join(script_dir, snapshot_dir)

    if config['logging'].get('log_file'):
        config['logging']['log_file'] = os.path.join(script_dir, config['logging']['log_file'])

    return config
