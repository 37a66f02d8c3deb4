"""
Unit Tests for YAML configuration loading
"""

import pytest
import yaml
import sys
import os

# Add project root to path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '../..'))
sys.path.insert(0, ROOT)

from src.lidar_bev.config import BEVConfig, ConfigError, load_config, REQUIRED_KEYS

BASE = {
    'grid_dim': 20, 'cell_size': 0.5, 'ground_cell_size': 0.25, 'ground_cell_span': 4,
    'height_threshold': 0.1, 'horizontal_fov': 90.0, 'max_height': 3.0,
    'max_expected_intensity': 1.0, 'num_planes': 64, 'min_angle': -24.9,
    'horizontal_res': 0.08, 'vertical_res': 0.4,
}


class TestBEVConfig:
    def test_defaults_and_derived_sizes(self):
        config = BEVConfig.from_dict(dict(BASE))
        assert config.grid_cells == 40
        assert config.ground_grid_dim == 80
        assert config.intensity_threshold is None
        assert config.remove_floor is True
        assert config.base_to_sensor == [0.0, 0.0, 0.0]

    @pytest.mark.parametrize("key", REQUIRED_KEYS)
    def test_required_keys(self, key):
        values = dict(BASE)
        del values[key]
        with pytest.raises(ConfigError, match=key):
            BEVConfig.from_dict(values)

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="grid_size"):
            BEVConfig.from_dict(dict(BASE, grid_size=3))

    def test_invalid_values(self):
        with pytest.raises(ConfigError):
            BEVConfig.from_dict(dict(BASE, cell_size=0))
        with pytest.raises(ConfigError):
            BEVConfig.from_dict(dict(BASE, horizontal_fov=200.0))
        with pytest.raises(ConfigError):
            BEVConfig.from_dict(dict(BASE, base_to_sensor=[0.0, 1.7]))
        with pytest.raises(ConfigError):
            BEVConfig.from_dict(dict(BASE, ground_cell_span=100))

    @pytest.mark.parametrize("key, value", [
        ('grid_dim', 20.5),
        ('ground_cell_span', 4.5),
        ('num_planes', 63.5),
        ('num_planes', True),
        ('height_threshold', '0.1'),
        ('horizontal_fov', 'wide'),
        ('max_height', [3.0]),
    ])
    def test_wrong_types(self, key, value):
        with pytest.raises(ConfigError, match=key):
            BEVConfig.from_dict(dict(BASE, **{key: value}))

    def test_whole_floats_become_counts(self):
        config = BEVConfig.from_dict(dict(BASE, grid_dim=20.0, ground_cell_span=4.0, num_planes=64.0))
        assert config.ground_cell_span == 4 and isinstance(config.ground_cell_span, int)
        assert config.num_planes == 64 and isinstance(config.num_planes, int)
        assert config.grid_cells == 40

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError):
            BEVConfig.from_dict(['grid_dim', 20])


class TestLoadConfig:
    def test_bundled_config(self):
        config = load_config(os.path.join(ROOT, 'config', 'lidar_bev.yaml'))
        assert config.grid_cells == 700
        assert config.num_planes == 64
        assert config.base_to_sensor[2] == pytest.approx(1.73)
        assert os.path.isabs(config.maps_dir)
        assert config.maps_dir == os.path.join(ROOT, 'config', '../maps')

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / 'nope.yaml'))

    def test_absolute_maps_dir_kept(self, tmp_path):
        path = tmp_path / 'bev.yaml'
        path.write_text(yaml.safe_dump(dict(BASE, maps_dir=str(tmp_path / 'maps'))))
        config = load_config(str(path))
        assert config.maps_dir == str(tmp_path / 'maps')


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
