"""Bird's eye view encoding of lidar scans with height-map ground removal."""
from .cloud import PointCloud
from .transforms import (RigidTransform, TransformContext, TransformProvider, StaticTransformProvider,
                         ActorTransformProvider, acquire_transforms, TransformLookupError,
                         TransformTimeoutError, TransformCancelledError)
from .point_filter import PointFilter
from .ground import GroundSegmenter, GroundGridRasterizer, HeightMap
from .bird_view import BirdViewRasterizer
from .normalization_map import (NormalizationMapLoader, NormalizationMapProvider,
                                ScriptNormalizationMapProvider, NormalizationMapRequest,
                                NormalizationMapError, save_normalization_map,
                                read_normalization_map)
from .config import BEVConfig, ConfigError, load_config
