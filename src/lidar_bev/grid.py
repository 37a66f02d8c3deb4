# src/lidar_bev/grid.py
"""Point -> cell index mappings.

The ground segmentation height map and the rasterizers use two different
conventions. They are not interchangeable:

    height map:  floor(grid_dim // 2 + coord / cell_size)
    rasterizers: floor(grid_cells // 2 - coord / cell_size)
"""
import numpy as np


def height_map_index(coord, cell_size, grid_dim):
    """Cell index used by the ground segmentation height map."""
    coord = np.asarray(coord, dtype=np.float64)
    with np.errstate(invalid='ignore'):
        return np.floor(grid_dim // 2 + coord / cell_size).astype(np.int64)


def raster_index(coord, cell_size, grid_cells):
    """Cell index used by the bird view and ground rasterizers."""
    coord = np.asarray(coord, dtype=np.float64)
    with np.errstate(invalid='ignore'):
        return np.floor(grid_cells // 2 - coord / cell_size).astype(np.int64)


def in_bounds(ix, iy, size):
    """True where both indices fall inside [0, size)."""
    return (ix >= 0) & (ix < size) & (iy >= 0) & (iy < size)


def num_cells(grid_dim, cell_size):
    """Rows/cols of a grid covering grid_dim meters."""
    return int(grid_dim / cell_size)
