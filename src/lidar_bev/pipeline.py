# src/lidar_bev/pipeline.py
"""
Lidar -> bird's eye view encoding pipeline.

Per frame: FOV filter -> [intensity filter] -> ground raster -> floor removal -> bird view.
"""
import argparse
import os
import sys
import time
from dataclasses import dataclass

import cv2
import numpy as np

from .bird_view import BirdViewRasterizer
from .cloud import PointCloud
from .config import ConfigError, load_config
from .ground import GroundGridRasterizer, GroundSegmenter
from .normalization_map import (NormalizationMapError, NormalizationMapLoader,
                                NormalizationMapRequest, ScriptNormalizationMapProvider)
from .point_filter import PointFilter
from .transforms import (RigidTransform, StaticTransformProvider, TransformLookupError,
                         acquire_transforms)
from .visualization import plot_bird_view


@dataclass
class BirdViewFrame:
    bird_view: np.ndarray   # H x W x 3 uint8 (height, density, intensity)
    ground: np.ndarray      # H x W float32 elevation
    num_points: int         # points left after filtering
    latency_ms: float


def normalization_request(config, sensor_height):
    return NormalizationMapRequest(
        grid_dim=config.grid_dim,
        cell_size=config.cell_size,
        num_planes=config.num_planes,
        sensor_height=sensor_height,
        min_height=config.min_height,
        max_height=config.max_height,
        min_angle=config.min_angle,
        horizontal_res=config.horizontal_res,
        vertical_res=config.vertical_res,
    )


def static_provider(config):
    """Transform provider built from the translations in the config."""
    provider = StaticTransformProvider()
    provider.set_transform(config.lidar_frame, config.camera_frame,
                           RigidTransform.from_translation(config.sensor_to_camera))
    provider.set_transform(config.base_frame, config.lidar_frame,
                           RigidTransform.from_translation(config.base_to_sensor))
    return provider


class BirdViewPipeline:
    def __init__(self, config, transforms, normalization_map):
        self.config = config
        self.transforms = transforms
        self.ground_rasterizer = GroundGridRasterizer(transforms.sensor_height)
        self.rasterizer = BirdViewRasterizer(
            transforms.sensor_height, config.max_expected_intensity, normalization_map)

    @classmethod
    def from_config(cls, config, provider=None, map_loader=None, cancel_event=None):
        """
        Acquire transforms and the normalization map for a configuration.

        Raises:
            TransformLookupError: transforms not available before the timeout
            NormalizationMapError: normalization map missing or malformed
        """
        transforms = acquire_transforms(
            provider or static_provider(config),
            config.lidar_frame, config.camera_frame, config.base_frame,
            timeout=config.transform_timeout,
            retry_interval=config.transform_retry_interval,
            cancel_event=cancel_event,
        )
        if map_loader is None:
            generator = ScriptNormalizationMapProvider(config.map_generator) if config.map_generator else None
            map_loader = NormalizationMapLoader(config.maps_dir, generator)
        table = map_loader.load(normalization_request(config, transforms.sensor_height))
        return cls(config, transforms, table)

    def process(self, cloud):
        """
        Encode one frame. The cloud is filtered in place.

        Args:
            cloud: PointCloud owned by this call

        Returns:
            BirdViewFrame
        """
        cfg = self.config
        p_start = time.time()

        PointFilter.filter_fov(cloud, self.transforms.sensor_to_camera, cfg.horizontal_fov)
        if cfg.intensity_threshold is not None:
            PointFilter.filter_intensities(cloud, cfg.intensity_threshold)

        # Ground raster uses the cloud before the floor is removed
        ground = self.ground_rasterizer.bird_ground(
            cloud, cfg.cell_size, cfg.ground_cell_span, cfg.grid_dim)

        if cfg.remove_floor:
            GroundSegmenter.remove_floor(
                cloud, cfg.ground_cell_size, cfg.height_threshold, cfg.ground_grid_dim)

        bird_view = self.rasterizer.bird_view(cloud, cfg.cell_size, cfg.max_height, cfg.grid_dim)

        latency = (time.time() - p_start) * 1000  # ms
        return BirdViewFrame(bird_view=bird_view, ground=ground,
                             num_points=len(cloud), latency_ms=latency)


def save_frame(frame, output_dir, stem):
    """Write <stem>_bev.png and <stem>_ground.npy, return their paths."""
    os.makedirs(output_dir, exist_ok=True)
    bev_path = os.path.join(output_dir, f"{stem}_bev.png")
    ground_path = os.path.join(output_dir, f"{stem}_ground.npy")
    # cv2 expects BGR; keep channel order height/density/intensity in the file
    cv2.imwrite(bev_path, frame.bird_view[..., ::-1])
    np.save(ground_path, frame.ground)
    return bev_path, ground_path


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Encode lidar scans as bird's eye view images")
    parser.add_argument('--config', required=True, help='YAML configuration file')
    parser.add_argument('--output-dir', default='results', help='Where to write the encoded frames')
    parser.add_argument('--plot', action='store_true', help='Also save a matplotlib preview per frame')
    parser.add_argument('clouds', nargs='+', help='.bin or .npy point clouds')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as ex:
        print(f"❌ {ex}")
        return 2

    try:
        pipeline = BirdViewPipeline.from_config(config)
    except TransformLookupError as ex:
        print(f"❌ {ex}")
        return 1
    except NormalizationMapError as ex:
        print(f"❌ {ex}")
        print("Error. File could not be created. Exiting...")
        return 1

    print("🚀 Starting Pipeline...")
    failed = 0
    for step, path in enumerate(args.clouds):
        try:
            cloud = PointCloud.load(path)
        except (OSError, ValueError) as ex:
            print(f"❌ Skipping {path}: {ex}")
            failed += 1
            continue
        frame = pipeline.process(cloud)
        stem = os.path.splitext(os.path.basename(path))[0]
        bev_path, _ = save_frame(frame, args.output_dir, stem)
        print(f"Step {step:3d} | Latency: {frame.latency_ms:.1f}ms | Points: {frame.num_points} | {bev_path}")

        if args.plot:
            plot_bird_view(frame, os.path.join(args.output_dir, f"{stem}_preview.png"),
                           title=f"{stem} | {frame.num_points} points")

    print("🛑 Pipeline stopped.")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
