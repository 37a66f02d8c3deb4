# src/lidar_bev/bird_view.py
import numpy as np

from .grid import raster_index, in_bounds, num_cells

# Initial cell height, below anything a sensor can return [m]
HEIGHT_SENTINEL = -9999.9

HEIGHT_CHANNEL = 0
DENSITY_CHANNEL = 1
INTENSITY_CHANNEL = 2


class BirdViewRasterizer:
    """Encodes a cloud as a 3-channel uint8 bird view (height, density, intensity)."""

    def __init__(self, sensor_height, max_expected_intensity, normalization_map):
        """
        Args:
            sensor_height: z of the lidar in the vehicle base frame [m]
            max_expected_intensity: Intensity mapped to 1.0 before averaging
            normalization_map: grid_cells x grid_cells expected max points per cell
        """
        self.sensor_height = sensor_height
        self.max_expected_intensity = max_expected_intensity
        self.normalization_map = np.asarray(normalization_map, dtype=np.float64)

    def accumulate(self, cloud, cell_size, max_height, grid_dim):
        """
        Bin the cloud and collect the raw per-cell statistics.

        Returns:
            height: Max elevation per cell (HEIGHT_SENTINEL if empty)
            density: Points per cell
            intensity: Sum of normalized intensities per cell
        """
        grid_cells = num_cells(grid_dim, cell_size)
        size = grid_cells * grid_cells
        height = np.full(size, HEIGHT_SENTINEL, dtype=np.float32)
        density = np.zeros(size, dtype=np.int64)
        intensity = np.zeros(size, dtype=np.float32)

        if len(cloud) > 0:
            z = (cloud.z.astype(np.float64) + self.sensor_height).astype(np.float32)
            below = z < max_height
            ix = raster_index(cloud.x[below], cell_size, grid_cells)
            iy = raster_index(cloud.y[below], cell_size, grid_cells)
            valid = in_bounds(ix, iy, grid_cells)
            flat = ix[valid] * grid_cells + iy[valid]

            np.maximum.at(height, flat, z[below][valid])
            np.add.at(density, flat, 1)
            norm_intensity = cloud.intensity[below][valid] / np.float32(self.max_expected_intensity)
            np.add.at(intensity, flat, norm_intensity.astype(np.float32))

        shape = (grid_cells, grid_cells)
        return height.reshape(shape), density.reshape(shape), intensity.reshape(shape)

    def bird_view(self, cloud, cell_size, max_height, grid_dim):
        """
        Rasterize the cloud into the bird view image.

        Args:
            cloud: PointCloud, usually with the floor removed
            cell_size: Cell side [m]
            max_height: Points at or above this elevation are ignored [m]
            grid_dim: Grid extent [m]

        Returns:
            grid_cells x grid_cells x 3 uint8 image
        """
        height, density, intensity = self.accumulate(cloud, cell_size, max_height, grid_dim)
        if self.normalization_map.shape != density.shape:
            raise ValueError(f"Normalization map shape {self.normalization_map.shape} "
                             f"does not match grid {density.shape}")

        bird_view = np.zeros(density.shape + (3,), dtype=np.uint8)
        bird_view[..., HEIGHT_CHANNEL] = self.height_channel(height, max_height)
        bird_view[..., DENSITY_CHANNEL] = self.density_channel(density, self.normalization_map)
        bird_view[..., INTENSITY_CHANNEL] = self.intensity_channel(intensity, density)
        return bird_view

    @staticmethod
    def height_channel(height, max_height):
        # Empty cells (still at the sentinel) become 0
        scaled = 255.0 * np.maximum(height.astype(np.float64), 0.0) / max_height
        return np.clip(np.trunc(scaled), 0, 255).astype(np.uint8)

    @staticmethod
    def density_channel(density, normalization_map):
        """Point count scaled by the expected max count, saturating at 255."""
        density = density.astype(np.float64)
        norm = np.asarray(normalization_map, dtype=np.float64)
        positive = norm > 0
        scaled = np.zeros_like(density)
        np.divide(density * 255.0, norm, out=scaled, where=positive)
        # A missing expectation means any point saturates the cell
        scaled[~positive & (density > 0)] = 255.0
        return np.minimum(np.trunc(scaled), 255).astype(np.uint8)

    @staticmethod
    def intensity_channel(intensity, density):
        """Mean normalized intensity per cell, 0 for empty cells."""
        mean = np.zeros(density.shape, dtype=np.float64)
        np.divide(255.0 * intensity.astype(np.float64), density, out=mean, where=density > 0)
        return np.clip(np.trunc(mean), 0, 255).astype(np.uint8)
