"""Tests for configuration loading and validation."""
import json

import pytest
import yaml

from fractal_fixtures.core.sampling import ParameterRanges
from fractal_fixtures.errors import ConfigurationError
from fractal_fixtures.io import config as config_module
from fractal_fixtures.io.config import ConfigManager, EnvironmentConfig, GenerationConfig, StorageConfig


@pytest.fixture
def manager():
    return ConfigManager()


@pytest.fixture
def spaces_env():
    return {
        'SPACES_KEY': 'key',
        'SPACES_SECRET': 'secret',
        'SPACES_BUCKET': 'fixtures',
        'SPACES_REGION': 'nyc3',
        'SPACES_PREFIX': 'fractals/',
    }


class TestGenerationConfig:

    def test_defaults_validate(self):
        config = GenerationConfig()
        config.validate()
        assert (config.min_ratio, config.max_ratio) == (0.3, 0.7)
        assert config.max_attempts == 50
        assert config.codec_options() == {'compress_level': 6}

    @pytest.mark.parametrize("overrides", [
        {'min_ratio': 0.8, 'max_ratio': 0.2},
        {'max_attempts': 0},
        {'max_attempts': 1.5},
        {'target_min_bytes': 10, 'target_max_bytes': 5},
        {'target_min_bytes': 0},
        {'backend': 'cuda'},
        {'job_workers': 0},
        {'render_threads': 0},
        {'tile_size': 4},
        {'image_format': 'bmp'},
        {'png_compress_level': 11},
        {'palette': 'plaid'},
        {'ranges': ParameterRanges(half_width=(0.0, 1.0))},
    ])
    def test_invalid_settings(self, overrides):
        with pytest.raises(ConfigurationError):
            GenerationConfig(**overrides).validate()

    def test_numba_backend_requires_numba(self, monkeypatch):
        monkeypatch.setattr(config_module, 'is_numba_available', lambda: False)
        with pytest.raises(ConfigurationError, match="numba"):
            GenerationConfig(backend='numba').validate()

    def test_jpeg_options(self):
        config = GenerationConfig(image_format='jpeg', jpeg_quality=80)
        assert config.codec_options() == {'quality': 80}


class TestConfigManager:

    def test_missing_path_gives_empty_config(self, manager):
        assert manager.load_config(None) == {}

    def test_missing_file(self, manager, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            manager.load_config(tmp_path / 'absent.yaml')

    def test_load_yaml(self, manager, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({
            'generation': {
                'max_attempts': 10,
                'ranges': {'width': [100, 200], 'height': [50, 60]},
            }
        }))

        config = manager.create_generation_config(manager.load_config(path))
        assert config.max_attempts == 10
        assert config.ranges.width == (100, 200)
        assert config.ranges.center_imag == (0.6, 0.9)

    def test_load_json(self, manager, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'generation': {'palette': 'hot'}}))
        config = manager.create_generation_config(manager.load_config(path))
        assert config.palette == 'hot'

    def test_empty_file(self, manager, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')
        assert manager.load_config(path) == {}

    def test_unparsable_file(self, manager, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text('generation: [unclosed')
        with pytest.raises(ConfigurationError, match="Could not parse"):
            manager.load_config(path)

    def test_non_mapping_file(self, manager, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n')
        with pytest.raises(ConfigurationError, match="mapping"):
            manager.load_config(path)

    def test_overrides_win_and_none_is_ignored(self, manager):
        config = manager.create_generation_config(
            {'generation': {'seed': 1, 'palette': 'hot'}},
            {'seed': 99, 'palette': None},
        )
        assert config.seed == 99
        assert config.palette == 'hot'

    def test_unknown_settings(self, manager):
        with pytest.raises(ConfigurationError, match="colour"):
            manager.create_generation_config({'generation': {'colour': 'red'}})
        with pytest.raises(ConfigurationError, match="depth"):
            manager.create_generation_config({'generation': {'ranges': {'depth': [1, 2]}}})

    def test_range_must_be_pair(self, manager):
        with pytest.raises(ConfigurationError, match="pair"):
            manager.create_generation_config({'generation': {'ranges': {'width': 100}}})


class TestStorageConfig:

    def test_from_environment(self, spaces_env):
        config = EnvironmentConfig.storage_from_env(spaces_env)
        assert config.bucket == 'fixtures'
        assert config.region == 'nyc3'
        assert config.key_prefix == 'fractals/'
        assert 'secret' not in repr(config)

    def test_aws_variable_fallbacks(self, spaces_env):
        env = dict(spaces_env)
        env['AWS_ACCESS_KEY_ID'] = env.pop('SPACES_KEY')
        env['AWS_SECRET_ACCESS_KEY'] = env.pop('SPACES_SECRET')
        config = EnvironmentConfig.storage_from_env(env)
        assert (config.access_key, config.secret_key) == ('key', 'secret')

    def test_missing_variables(self, spaces_env):
        env = dict(spaces_env)
        del env['SPACES_SECRET']
        del env['SPACES_BUCKET']
        with pytest.raises(ConfigurationError, match="SPACES_SECRET, SPACES_BUCKET"):
            EnvironmentConfig.storage_from_env(env)

    def test_file_overrides(self, manager, spaces_env):
        config = manager.create_storage_config({'storage': {'upload_concurrency': 2}}, spaces_env)
        assert config.upload_concurrency == 2

    def test_secrets_not_accepted_from_file(self, manager, spaces_env):
        with pytest.raises(ConfigurationError, match="environment"):
            manager.create_storage_config({'storage': {'secret_key': 'x'}}, spaces_env)

    @pytest.mark.parametrize("prefix, expected", [
        ('', ''),
        ('fractals', 'fractals/'),
        ('/fractals/', 'fractals/'),
        ('a/b/', 'a/b/'),
    ])
    def test_key_prefix_normalization(self, prefix, expected):
        config = StorageConfig('k', 's', 'b', 'r', prefix=prefix)
        assert config.key_prefix == expected

    def test_invalid_tuning(self):
        with pytest.raises(ConfigurationError):
            StorageConfig('k', 's', 'b', 'r', upload_retries=0).validate()
