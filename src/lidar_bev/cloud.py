# src/lidar_bev/cloud.py
"""Flat point cloud container shared by the filtering stages."""
import os
import numpy as np

POINT_FIELDS = 4  # x, y, z, intensity


class PointCloud:
    """Ordered, mutable N x 4 cloud [x, y, z, intensity].

    Filters call keep() which swaps the point array for the surviving
    rows. Survivors keep their relative order.
    """

    def __init__(self, points=None):
        if points is None:
            points = np.zeros((0, POINT_FIELDS), dtype=np.float32)
        points = np.asarray(points, dtype=np.float32)
        if points.shape[-1] != POINT_FIELDS:
            raise ValueError(f"Expected points with {POINT_FIELDS} fields, got shape {points.shape}")
        # Organized clouds (rows x cols x 4) are flattened before any filtering
        self.points = points.reshape((-1, POINT_FIELDS))

    @classmethod
    def from_buffer(cls, raw_data):
        """Decode a raw float32 buffer (CARLA ray cast / KITTI scan layout)."""
        raw = np.frombuffer(raw_data, dtype=np.float32)
        return cls(raw.reshape((-1, POINT_FIELDS)).copy())

    @classmethod
    def load(cls, path):
        """
        Load a cloud from disk.

        Args:
            path: .bin (raw float32 x, y, z, intensity) or .npy file

        Returns:
            PointCloud
        """
        ext = os.path.splitext(path)[1].lower()
        if ext == '.npy':
            return cls(np.load(path))
        if ext == '.bin':
            raw = np.fromfile(path, dtype=np.float32)
            if raw.size % POINT_FIELDS:
                raise ValueError(f"{path}: size is not a whole number of {POINT_FIELDS}-float points")
            return cls(raw.reshape((-1, POINT_FIELDS)))
        raise ValueError(f"Unsupported point cloud file: {path}")

    def __len__(self):
        return len(self.points)

    @property
    def x(self):
        return self.points[:, 0]

    @property
    def y(self):
        return self.points[:, 1]

    @property
    def z(self):
        return self.points[:, 2]

    @property
    def intensity(self):
        return self.points[:, 3]

    def keep(self, mask):
        """Drop every point whose mask entry is False."""
        self.points = self.points[np.asarray(mask, dtype=bool)]
        return self
