# src/lidar_bev/normalization_map.py
"""Expected max points per bird view cell, used to normalize the density channel.

The table only depends on the sensor geometry (mount height, angular
resolution, number of scan planes), so it is generated once by an external
tool, stored as plain text and reused across runs.
"""
import os
import subprocess
import sys
from dataclasses import dataclass

import numpy as np

from .grid import num_cells

MAP_SUFFIX = "_map.txt"


class NormalizationMapError(RuntimeError):
    """The normalization table could not be loaded or generated."""


@dataclass(frozen=True)
class NormalizationMapRequest:
    """Sensor geometry a normalization table is computed for."""
    grid_dim: int
    cell_size: float
    num_planes: int
    sensor_height: float
    min_height: float
    max_height: float
    min_angle: float
    horizontal_res: float
    vertical_res: float

    def __post_init__(self):
        if float(self.grid_dim) != int(self.grid_dim):
            raise ValueError(f"grid_dim must be a whole number of meters, got {self.grid_dim!r}")

    @property
    def grid_cells(self):
        return num_cells(self.grid_dim, self.cell_size)

    @property
    def key(self):
        return (int(self.grid_dim), f"{self.cell_size:.2f}", int(self.num_planes), f"{self.sensor_height:.2f}")

    def file_name(self):
        """e.g. 70_0.10_64_1.73_map.txt"""
        grid_dim, cell_size, planes, height = self.key
        return f"{grid_dim}_{cell_size}_{planes}_{height}{MAP_SUFFIX}"


def save_normalization_map(path, table):
    """Write a table as whitespace separated rows, exact on reload."""
    table = np.asarray(table, dtype=np.float64)
    if table.ndim != 2:
        raise ValueError(f"Expected a 2D table, got shape {table.shape}")
    np.savetxt(path, table, fmt="%.17g", delimiter=" ")


def read_normalization_map(path, grid_cells):
    """
    Parse a normalization table file.

    Args:
        path: Text file with grid_cells rows of grid_cells floats
        grid_cells: Expected rows/cols

    Returns:
        grid_cells x grid_cells float64 array

    Raises:
        NormalizationMapError: unreadable file or wrong shape
    """
    try:
        table = np.loadtxt(path, dtype=np.float64, ndmin=2)
    except (OSError, ValueError) as ex:
        raise NormalizationMapError(f"Could not read normalization map {path}: {ex}") from ex

    if table.shape != (grid_cells, grid_cells):
        raise NormalizationMapError(
            f"Normalization map {path} has shape {table.shape}, expected {(grid_cells, grid_cells)}")
    return table


class NormalizationMapProvider:
    """Produces a missing normalization table file."""

    def generate(self, request, maps_dir):
        """Create maps_dir/request.file_name(); blocking."""
        raise NotImplementedError


class ScriptNormalizationMapProvider(NormalizationMapProvider):
    """Runs the external max points map generator as a subprocess."""

    def __init__(self, command):
        """
        Args:
            command: Generator executable, as a path or argv list.
                A .py path is run with the current interpreter.
        """
        if isinstance(command, str):
            command = [sys.executable, command] if command.endswith('.py') else [command]
        self.command = list(command)

    def build_command(self, request, maps_dir):
        maps_dir = os.path.join(maps_dir, '')
        return self.command + [
            "--maps", maps_dir,
            "--map_size", str(int(request.grid_dim)),
            "--cell_size", str(request.cell_size),
            "--min_height", str(request.min_height),
            "--max_height", str(request.max_height),
            "--num_planes", str(int(request.num_planes)),
            "--velo_minangle", str(request.min_angle),
            "--velo_hres", str(request.horizontal_res),
            "--velo_vres", str(request.vertical_res),
            "--velo_height", f"{request.sensor_height:.2f}",
        ]

    def generate(self, request, maps_dir):
        cmd = self.build_command(request, maps_dir)
        print("Required max_points map not found, creating map...")
        print(" ".join(cmd))
        try:
            result = subprocess.run(cmd)
        except OSError as ex:
            raise NormalizationMapError(f"Could not run map generator {cmd[0]}: {ex}") from ex
        if result.returncode != 0:
            print(f"⚠️  Map generator exited with code {result.returncode}")


class NormalizationMapLoader:
    """Loads normalization tables from maps_dir, generating them on demand.

    Loaded tables are cached per geometry and shared read-only between frames.
    """

    def __init__(self, maps_dir, provider=None):
        self.maps_dir = maps_dir
        self.provider = provider
        self._cache = {}

    def path_for(self, request):
        return os.path.join(self.maps_dir, request.file_name())

    def load(self, request):
        """
        Return the table for this geometry.

        Raises:
            NormalizationMapError: file missing after generation, or malformed
        """
        if request.key in self._cache:
            return self._cache[request.key]

        path = self.path_for(request)
        print(path)
        if not os.path.isfile(path):
            if self.provider is None:
                raise NormalizationMapError(f"Normalization map {path} not found and no generator configured")
            os.makedirs(self.maps_dir, exist_ok=True)
            self.provider.generate(request, self.maps_dir)
            if not os.path.isfile(path):
                raise NormalizationMapError(f"Normalization map {path} could not be created")

        table = read_normalization_map(path, request.grid_cells)
        table.setflags(write=False)
        self._cache[request.key] = table
        return table
