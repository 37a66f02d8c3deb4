# src/lidar_bev/transforms.py
"""Rigid transforms between the lidar, camera and vehicle base frames.

Only the translation part of each transform is used by the filters and
rasterizers. The rotation is carried along but assumed to be identity,
so a tilted sensor mount is not compensated.
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


class TransformLookupError(RuntimeError):
    """A transform is not (yet) available from the provider."""


class TransformTimeoutError(TransformLookupError):
    """Transforms could not be acquired before the deadline."""


class TransformCancelledError(TransformLookupError):
    """Transform acquisition was cancelled by the caller."""


@dataclass
class RigidTransform:
    """Translation [m] plus rotation quaternion (x, y, z, w)."""
    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    @property
    def x(self):
        return float(self.translation[0])

    @property
    def y(self):
        return float(self.translation[1])

    @property
    def z(self):
        return float(self.translation[2])

    @classmethod
    def from_translation(cls, translation):
        t = np.asarray(translation, dtype=np.float64).reshape(3)
        return cls(translation=(float(t[0]), float(t[1]), float(t[2])))


@dataclass
class TransformContext:
    """The two transforms consumed by the filters and rasterizers."""
    sensor_to_camera: RigidTransform = field(default_factory=RigidTransform)
    base_to_sensor: RigidTransform = field(default_factory=RigidTransform)

    @property
    def sensor_height(self):
        """Lidar height above the vehicle base frame."""
        return self.base_to_sensor.z


class TransformProvider:
    """Source of transforms between named frames."""

    def lookup(self, target_frame, source_frame):
        """
        Args:
            target_frame: Frame the transform maps into
            source_frame: Frame the transform maps from

        Returns:
            RigidTransform

        Raises:
            TransformLookupError: transform currently unavailable
        """
        raise NotImplementedError


class StaticTransformProvider(TransformProvider):
    """Fixed transforms, usually read from configuration."""

    def __init__(self, transforms=None):
        # {(target_frame, source_frame): RigidTransform}
        self.transforms = dict(transforms or {})

    def set_transform(self, target_frame, source_frame, transform):
        self.transforms[(target_frame, source_frame)] = transform

    def lookup(self, target_frame, source_frame):
        try:
            return self.transforms[(target_frame, source_frame)]
        except KeyError:
            raise TransformLookupError(
                f"No transform from '{source_frame}' to '{target_frame}'") from None


class ActorTransformProvider(TransformProvider):
    """Transforms from simulator actors attached to the same vehicle.

    Each frame name maps to an object with get_transform() returning
    something with a .location (x, y, z), such as a CARLA sensor whose
    transform is relative to its parent vehicle. The base frame maps to
    None, meaning the origin of the vehicle.
    """

    def __init__(self, actors):
        self.actors = dict(actors)

    def _location(self, frame):
        if frame not in self.actors:
            raise TransformLookupError(f"Unknown frame '{frame}'")
        actor = self.actors[frame]
        if actor is None:
            return np.zeros(3)
        loc = actor.get_transform().location
        return np.array([loc.x, loc.y, loc.z], dtype=np.float64)

    def lookup(self, target_frame, source_frame):
        # Pose of source_frame expressed in target_frame, translation only
        offset = self._location(source_frame) - self._location(target_frame)
        return RigidTransform.from_translation(offset)


def acquire_transforms(provider, lidar_frame, camera_frame, base_frame,
                       timeout=10.0, retry_interval=0.5,
                       cancel_event: Optional[threading.Event] = None):
    """
    Wait for the lidar->camera and base->lidar transforms.

    Args:
        provider: TransformProvider
        lidar_frame, camera_frame, base_frame: Frame names
        timeout: Give up after this many seconds
        retry_interval: Wait between attempts [s]
        cancel_event: Optional threading.Event; setting it aborts the wait

    Returns:
        TransformContext

    Raises:
        TransformTimeoutError, TransformCancelledError
    """
    cancel_event = cancel_event or threading.Event()
    deadline = time.monotonic() + timeout

    while True:
        if cancel_event.is_set():
            raise TransformCancelledError("Transform acquisition cancelled")
        try:
            sensor_to_camera = provider.lookup(lidar_frame, camera_frame)
            base_to_sensor = provider.lookup(base_frame, lidar_frame)
            break
        except TransformLookupError as ex:
            print(f"⚠️  {ex}")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TransformTimeoutError(
                f"Transforms {lidar_frame}->{camera_frame} / {base_frame}->{lidar_frame} "
                f"unavailable after {timeout:.1f}s")
        if cancel_event.wait(min(retry_interval, remaining)):
            raise TransformCancelledError("Transform acquisition cancelled")

    print(f"New transform: {sensor_to_camera.x}, {sensor_to_camera.y}")
    return TransformContext(sensor_to_camera=sensor_to_camera, base_to_sensor=base_to_sensor)
