# src/lidar_bev/config.py
import os
from dataclasses import dataclass, field, fields
from typing import List, Optional

import yaml

REQUIRED_KEYS = (
    'grid_dim', 'cell_size', 'ground_cell_size', 'ground_cell_span',
    'height_threshold', 'horizontal_fov', 'max_height', 'max_expected_intensity',
    'num_planes', 'min_angle', 'horizontal_res', 'vertical_res',
)


class ConfigError(ValueError):
    """Missing or invalid configuration value."""


@dataclass
class BEVConfig:
    # Grid geometry
    grid_dim: int                 # grid extent [m]
    cell_size: float              # bird view cell side [m]
    ground_cell_size: float       # ground segmentation cell side [m]
    ground_cell_span: int         # bird view cells per coarse ground cell
    height_threshold: float       # max z spread of a flat cell [m]
    horizontal_fov: float         # camera horizontal FOV [deg]
    max_height: float             # elevation cutoff [m]
    max_expected_intensity: float
    # Sensor geometry, selects the normalization map
    num_planes: int
    min_angle: float              # lowest beam angle [deg]
    horizontal_res: float         # [deg]
    vertical_res: float           # [deg]

    min_height: float = -10.0
    intensity_threshold: Optional[float] = None
    remove_floor: bool = True
    maps_dir: str = 'maps'
    map_generator: Optional[str] = None

    lidar_frame: str = 'velodyne'
    camera_frame: str = 'stereo_camera'
    base_frame: str = 'base_footprint'
    sensor_to_camera: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    base_to_sensor: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    transform_timeout: float = 10.0
    transform_retry_interval: float = 0.5

    @property
    def grid_cells(self):
        return int(self.grid_dim / self.cell_size)

    @property
    def ground_grid_dim(self):
        """Rows/cols of the ground segmentation height map."""
        return int(self.grid_dim / self.ground_cell_size)

    @classmethod
    def from_dict(cls, values):
        if not isinstance(values, dict):
            raise ConfigError("Configuration must be a mapping")

        missing = [k for k in REQUIRED_KEYS if values.get(k) is None]
        if missing:
            raise ConfigError(f"Missing required configuration keys: {', '.join(missing)}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        config = cls(**values)
        config.validate()
        return config

    def validate(self):
        # Counts must be whole numbers; 4.0 from YAML is accepted as 4
        for name in ('grid_dim', 'ground_cell_span', 'num_planes'):
            value = getattr(self, name)
            if isinstance(value, float) and value.is_integer():
                setattr(self, name, int(value))
            elif isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"'{name}' must be an integer, got {value!r}")
        positive = ('grid_dim', 'cell_size', 'ground_cell_size', 'ground_cell_span',
                    'max_height', 'max_expected_intensity', 'num_planes')
        numeric = positive + ('height_threshold', 'horizontal_fov')
        for name in numeric:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'{name}' must be a number, got {value!r}")
        for name in positive:
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"'{name}' must be a positive number, got {value!r}")
        if self.height_threshold < 0:
            raise ConfigError("'height_threshold' must not be negative")
        if not 0 < self.horizontal_fov < 180:
            raise ConfigError("'horizontal_fov' must be in (0, 180) degrees")
        for name in ('sensor_to_camera', 'base_to_sensor'):
            if len(getattr(self, name)) != 3:
                raise ConfigError(f"'{name}' must be an [x, y, z] translation")
        if self.grid_cells // self.ground_cell_span == 0:
            raise ConfigError("'ground_cell_span' is larger than the bird view grid")


def load_config(path):
    """Read a YAML configuration file into a BEVConfig."""
    if not os.path.isfile(path):
        raise ConfigError(f"Configuration file not found: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        values = yaml.safe_load(f) or {}
    config = BEVConfig.from_dict(values)
    # Relative map directories are resolved next to the config file
    if not os.path.isabs(config.maps_dir):
        config.maps_dir = os.path.join(os.path.dirname(os.path.abspath(path)), config.maps_dir)
    return config
