# src/lidar_bev/ground.py
import numpy as np
import cv2
from dataclasses import dataclass

from .grid import height_map_index, raster_index, in_bounds, num_cells

# Points below this (sensor frame) are treated as noise by the ground raster [m]
MIN_GROUND_Z = -3.0
# Value of coarse cells that received no points
GROUND_SENTINEL = 9999.9
# Cells closer than this to the sensor (either axis) are assumed flat ground [m]
BLIND_SPOT_RADIUS = 5.0
# Elevations within this band around 0 are left alone in the blind spot [m]
BLIND_SPOT_TOLERANCE = 0.2


@dataclass
class HeightMap:
    """Per-cell elevation statistics of one cloud."""
    min_z: np.ndarray
    max_z: np.ndarray
    visited: np.ndarray
    cell_size: float
    grid_dim: int

    def cell_of(self, x, y):
        ix = height_map_index(x, self.cell_size, self.grid_dim)
        iy = height_map_index(y, self.cell_size, self.grid_dim)
        return ix, iy


class GroundSegmenter:
    """Height-map ground removal: a point on a locally flat cell is ground."""

    @staticmethod
    def height_map(cloud, cell_size, grid_dim):
        """
        Collect min/max elevation for every cell of a grid_dim x grid_dim grid.

        Args:
            cloud: PointCloud
            cell_size: Cell side [m]
            grid_dim: Number of rows/cols

        Returns:
            HeightMap
        """
        grid_dim = int(grid_dim)
        size = grid_dim * grid_dim
        min_z = np.full(size, np.inf, dtype=np.float32)
        max_z = np.full(size, -np.inf, dtype=np.float32)
        visited = np.zeros(size, dtype=bool)

        if len(cloud) > 0:
            ix = height_map_index(cloud.x, cell_size, grid_dim)
            iy = height_map_index(cloud.y, cell_size, grid_dim)
            valid = in_bounds(ix, iy, grid_dim)
            flat = ix[valid] * grid_dim + iy[valid]
            z = cloud.z[valid]
            np.minimum.at(min_z, flat, z)
            np.maximum.at(max_z, flat, z)
            visited[flat] = True

        # Untouched cells read as zero height
        min_z[~visited] = 0.0
        max_z[~visited] = 0.0
        shape = (grid_dim, grid_dim)
        return HeightMap(min_z.reshape(shape), max_z.reshape(shape), visited.reshape(shape),
                         cell_size, grid_dim)

    @staticmethod
    def is_ground(point, height_map, height_threshold):
        """
        Classify a single point against a height map.

        A point whose cell is out of the grid or was never visited is not
        ground and stays in the cloud.
        """
        ix, iy = height_map.cell_of(point[0], point[1])
        if not in_bounds(ix, iy, height_map.grid_dim):
            return False
        if not height_map.visited[ix, iy]:
            return False
        spread = float(height_map.max_z[ix, iy]) - float(height_map.min_z[ix, iy])
        return spread < height_threshold

    @staticmethod
    def ground_mask(cloud, height_map, height_threshold):
        """Vectorized is_ground over the whole cloud."""
        ix, iy = height_map.cell_of(cloud.x, cloud.y)
        valid = in_bounds(ix, iy, height_map.grid_dim)
        mask = np.zeros(len(cloud), dtype=bool)
        vx, vy = ix[valid], iy[valid]
        spread = (height_map.max_z[vx, vy].astype(np.float64)
                  - height_map.min_z[vx, vy].astype(np.float64))
        mask[valid] = height_map.visited[vx, vy] & (spread < height_threshold)
        return mask

    @staticmethod
    def remove_floor(cloud, cell_size, height_threshold, grid_dim):
        """
        Remove the ground points of a cloud, in place.

        Args:
            cloud: PointCloud
            cell_size: Height map cell side [m]
            height_threshold: Max z spread of a flat (ground) cell [m]
            grid_dim: Height map rows/cols

        Returns:
            The same cloud, for chaining
        """
        if len(cloud) == 0:
            return cloud
        height_map = GroundSegmenter.height_map(cloud, cell_size, grid_dim)
        return cloud.keep(~GroundSegmenter.ground_mask(cloud, height_map, height_threshold))


def coarse_index(fine_index, ground_cell_span):
    """Fine raster cell -> coarse ground cell, truncating toward zero."""
    fine_index = np.asarray(fine_index, dtype=np.float64)
    return np.trunc(fine_index / ground_cell_span - 0.5).astype(np.int64)


class GroundGridRasterizer:
    """Smoothed ground elevation raster at bird view resolution."""

    def __init__(self, sensor_height):
        # z of the lidar in the vehicle base frame
        self.sensor_height = sensor_height

    def coarse_grid(self, cloud, bv_cell_size, ground_cell_span, grid_dim):
        """Min elevation per coarse cell, GROUND_SENTINEL where empty."""
        grid_cells = num_cells(grid_dim, bv_cell_size)
        ground_cells = grid_cells // ground_cell_span
        aux = np.full(ground_cells * ground_cells, GROUND_SENTINEL, dtype=np.float32)

        pts = cloud.points[cloud.z >= MIN_GROUND_Z]
        if len(pts) > 0 and ground_cells > 0:
            z = (pts[:, 2].astype(np.float64) + self.sensor_height).astype(np.float32)
            gx = coarse_index(raster_index(pts[:, 0], bv_cell_size, grid_cells), ground_cell_span)
            gy = coarse_index(raster_index(pts[:, 1], bv_cell_size, grid_cells), ground_cell_span)
            valid = in_bounds(gx, gy, ground_cells)
            np.minimum.at(aux, gx[valid] * ground_cells + gy[valid], z[valid])

        return aux.reshape((ground_cells, ground_cells))

    @staticmethod
    def patch_blind_spot(aux, bv_cell_size, ground_cell_span, grid_cells):
        """Force the cells around the sensor to 0 unless already near 0."""
        ground_cells = aux.shape[0]
        offset = np.abs((np.arange(ground_cells) * ground_cell_span - grid_cells / 2.0) * bv_cell_size)
        near = offset < BLIND_SPOT_RADIUS
        patch = np.outer(near, near) & (np.abs(aux) > BLIND_SPOT_TOLERANCE)
        aux[patch] = 0.0
        return aux

    def bird_ground(self, cloud, bv_cell_size, ground_cell_span, grid_dim):
        """
        Build the ground elevation raster.

        Args:
            cloud: PointCloud (before or after floor removal)
            bv_cell_size: Bird view cell side [m]
            ground_cell_span: Bird view cells per coarse ground cell
            grid_dim: Grid extent [m]

        Returns:
            grid_cells x grid_cells float32 elevation raster
        """
        grid_cells = num_cells(grid_dim, bv_cell_size)
        ground_cells = grid_cells // ground_cell_span
        if ground_cells == 0:
            return np.full((grid_cells, grid_cells), GROUND_SENTINEL, dtype=np.float32)

        aux = self.coarse_grid(cloud, bv_cell_size, ground_cell_span, grid_dim)
        aux = self.patch_blind_spot(aux, bv_cell_size, ground_cell_span, grid_cells)
        median = cv2.medianBlur(np.ascontiguousarray(aux, dtype=np.float32), 3)

        # Upsample with the same fine -> coarse mapping used to fill the grid.
        # Trailing cells past the last full block reuse the last coarse cell.
        idx = np.clip(coarse_index(np.arange(grid_cells), ground_cell_span), 0, ground_cells - 1)
        return median[np.ix_(idx, idx)].astype(np.float32)
