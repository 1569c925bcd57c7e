import os

import pytest
import yaml

# Module to test
from document_compiler import config_loader
from document_compiler.exceptions import ConfigError, ConfigNotFoundError, ConfigParsingError

# --- Test Fixtures ---

@pytest.fixture
def mock_env_vars(monkeypatch):
    """Fixture to mock environment variables."""
    monkeypatch.setenv("TEST_API_KEY_FROM_ENV", "env_key_123")
    monkeypatch.setenv("GEMINI_API_KEY", "default_env_key_456") # Default fallback
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("UNSET_KEY_VAR", raising=False)

@pytest.fixture
def temp_config_file(tmp_path):
    """Fixture to create temporary config files. Returns the absolute path."""
    def _create_file(content, filename="config.yaml", raw=False):
        file_path = tmp_path / filename
        file_path.write_text(content if raw else yaml.dump(content), encoding='utf-8')
        return str(file_path)
    return _create_file

# --- Test Cases ---

def test_load_config_defaults_no_file(mock_env_vars, tmp_path):
    """Defaults are used, with the default env var, when the file does not exist."""
    config = config_loader.load_config(str(tmp_path / "non_existent.yaml"))

    assert config['default_provider'] == 'gemini'
    assert config['gemini']['model_name'] == 'gemini-2.5-flash-lite'
    assert config['context'] == {'min_exchanges': 5, 'max_tokens': 4000}
    assert config['compilation']['max_retries'] == 3
    assert config['merge']['require_unique_match'] is False
    assert config['gemini']['resolved_key'] == "default_env_key_456"
    assert 'resolved_key' not in config['anthropic']

def test_load_config_required_missing_file(tmp_path):
    with pytest.raises(ConfigNotFoundError):
        config_loader.load_config(str(tmp_path / "missing.yaml"), required=True)

def test_load_config_valid_file(mock_env_vars, temp_config_file):
    """A config file overrides defaults section by section."""
    path = temp_config_file({
        'gemini': {'model_name': 'gemini-ultra', 'api_key': 'TEST_API_KEY_FROM_ENV'},
        'compilation': {'max_retries': 1},
        'logging': {'level': 'DEBUG'},
    })

    config = config_loader.load_config(path)

    assert config['gemini']['model_name'] == 'gemini-ultra'
    assert config['gemini']['temperature'] == 0.4 # Default preserved
    assert config['gemini']['resolved_key'] == "env_key_123"
    assert config['compilation']['max_retries'] == 1
    assert config['compilation']['retry_delay_sec'] == 2.0
    assert config['logging']['level'] == 'DEBUG'

def test_load_config_falls_back_to_default_env_var(mock_env_vars, temp_config_file):
    path = temp_config_file({'gemini': {'api_key': 'UNSET_KEY_VAR'}})
    config = config_loader.load_config(path)
    assert config['gemini']['resolved_key'] == "default_env_key_456"

def test_load_config_hardcoded_key(mock_env_vars, temp_config_file):
    literal_key = "sk-ant-REDACTED"
    path = temp_config_file({'anthropic': {'api_key': literal_key}})
    config = config_loader.load_config(path)
    assert config['anthropic']['resolved_key'] == literal_key

def test_load_config_unknown_section_kept(mock_env_vars, temp_config_file):
    path = temp_config_file({'extra': {'flag': True}})
    config = config_loader.load_config(path)
    assert config['extra'] == {'flag': True}

def test_load_config_paths_made_absolute(mock_env_vars, tmp_path):
    config = config_loader.load_config(str(tmp_path / "non_existent.yaml"))
    assert os.path.isabs(config['storage']['snapshot_dir'])
    assert config['storage']['snapshot_dir'].endswith('snapshots')
    assert os.path.isabs(config['logging']['log_file'])

def test_load_config_invalid_yaml(temp_config_file):
    path = temp_config_file("gemini: [unclosed", raw=True)
    with pytest.raises(ConfigParsingError):
        config_loader.load_config(path)

def test_load_config_non_mapping(temp_config_file):
    path = temp_config_file("- just\n- a list\n", raw=True)
    with pytest.raises(ConfigParsingError, match="mapping"):
        config_loader.load_config(path)

def test_load_config_does_not_mutate_defaults(mock_env_vars, temp_config_file):
    path = temp_config_file({'context': {'max_tokens': 10}})
    config_loader.load_config(path)
    assert config_loader.DEFAULT_CONFIG['context']['max_tokens'] == 4000

def test_config_errors_share_base():
    assert issubclass(ConfigParsingError, ConfigError)
    assert issubclass(ConfigNotFoundError, ConfigError)
