# src/lidar_bev/point_filter.py
import numpy as np

# Points further than this in front of the camera are dropped [m]
MAX_FOV_RANGE = 100.0


class PointFilter:
    """Field-of-view and intensity filtering on a PointCloud."""

    @staticmethod
    def is_in_camera_fov(point, sensor_to_camera, horizontal_fov):
        """
        Check whether a single point lies inside the camera wedge.

        The wedge test compares |y| against a linear function of x instead
        of computing atan(y / x).

        Args:
            point: [x, y, z, intensity] in the lidar frame
            sensor_to_camera: RigidTransform lidar -> camera
            horizontal_fov: Horizontal field of view [deg]

        Returns:
            True if the point is kept
        """
        x = float(point[0]) - sensor_to_camera.x
        y = float(point[1]) - sensor_to_camera.y

        # Behind the camera or too far
        if x < 0 or x > MAX_FOV_RANGE:
            return False

        return bool(abs(y) < (horizontal_fov / 90.0) * x)

    @staticmethod
    def fov_mask(cloud, sensor_to_camera, horizontal_fov):
        """Vectorized is_in_camera_fov over the whole cloud."""
        x = cloud.x.astype(np.float64) - sensor_to_camera.x
        y = cloud.y.astype(np.float64) - sensor_to_camera.y
        in_range = (x >= 0) & (x <= MAX_FOV_RANGE)
        return in_range & (np.abs(y) < (horizontal_fov / 90.0) * x)

    @staticmethod
    def filter_fov(cloud, sensor_to_camera, horizontal_fov):
        """
        Remove the points outside the camera field of view, in place.

        Args:
            cloud: PointCloud
            sensor_to_camera: RigidTransform lidar -> camera
            horizontal_fov: Horizontal field of view [deg]

        Returns:
            The same cloud, for chaining
        """
        if len(cloud) == 0:
            return cloud
        return cloud.keep(PointFilter.fov_mask(cloud, sensor_to_camera, horizontal_fov))

    @staticmethod
    def filter_intensities(cloud, intensity_threshold):
        """Remove every point brighter than the threshold (ties are kept)."""
        if len(cloud) == 0:
            return cloud
        return cloud.keep(~(cloud.intensity.astype(np.float64) > intensity_threshold))
