"""
Unit Tests for loading, caching and generating normalization maps
"""

import pytest
import numpy as np
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from src.lidar_bev.normalization_map import (
    NormalizationMapRequest,
    NormalizationMapLoader,
    NormalizationMapProvider,
    NormalizationMapError,
    ScriptNormalizationMapProvider,
    save_normalization_map,
    read_normalization_map,
)


def make_request(grid_dim=20, cell_size=0.5, sensor_height=1.73):
    return NormalizationMapRequest(
        grid_dim=grid_dim, cell_size=cell_size, num_planes=64, sensor_height=sensor_height,
        min_height=-10.0, max_height=3.0, min_angle=-24.9, horizontal_res=0.08, vertical_res=0.4,
    )


class WritingProvider(NormalizationMapProvider):
    """Stands in for the external generator and writes a constant table."""

    def __init__(self, value=25.0, write=True):
        self.value = value
        self.write = write
        self.calls = 0

    def generate(self, request, maps_dir):
        self.calls += 1
        if self.write:
            table = np.full((request.grid_cells, request.grid_cells), self.value)
            save_normalization_map(os.path.join(maps_dir, request.file_name()), table)


class TestFileFormat:
    def test_file_name_encodes_geometry(self):
        request = make_request(grid_dim=70, cell_size=0.1, sensor_height=1.734)
        assert request.file_name() == "70_0.10_64_1.73_map.txt"
        assert request.grid_cells == 700

    def test_save_and_read_reproduce_table(self, tmp_path):
        rng = np.random.default_rng(3)
        table = rng.uniform(0.0, 500.0, size=(40, 40))
        path = str(tmp_path / "map.txt")

        save_normalization_map(path, table)
        loaded = read_normalization_map(path, 40)

        np.testing.assert_array_equal(loaded, table)

    def test_text_layout(self, tmp_path):
        path = tmp_path / "map.txt"
        save_normalization_map(str(path), [[1.0, 2.5], [3.0, 40.0]])
        lines = path.read_text().strip().splitlines()
        assert len(lines) == 2
        assert [float(v) for v in lines[1].split()] == [3.0, 40.0]

    def test_wrong_shape_rejected(self, tmp_path):
        path = str(tmp_path / "map.txt")
        save_normalization_map(path, np.ones((4, 5)))
        with pytest.raises(NormalizationMapError):
            read_normalization_map(path, 4)

    def test_garbage_rejected(self, tmp_path):
        path = tmp_path / "map.txt"
        path.write_text("1.0 abc\n2.0 3.0\n")
        with pytest.raises(NormalizationMapError):
            read_normalization_map(str(path), 2)


class TestLoader:
    def test_existing_file_loaded_and_cached(self, tmp_path):
        request = make_request()
        table = np.full((40, 40), 12.5)
        save_normalization_map(str(tmp_path / request.file_name()), table)
        loader = NormalizationMapLoader(str(tmp_path))

        first = loader.load(request)
        os.remove(tmp_path / request.file_name())
        second = loader.load(request)

        np.testing.assert_array_equal(first, table)
        assert second is first
        assert not first.flags.writeable

    def test_missing_file_generated_once(self, tmp_path):
        provider = WritingProvider(value=30.0)
        maps_dir = str(tmp_path / "maps")
        loader = NormalizationMapLoader(maps_dir, provider)

        table = loader.load(make_request())
        loader.load(make_request())

        assert provider.calls == 1
        assert table.shape == (40, 40)
        assert np.all(table == 30.0)

    def test_generation_failure_is_fatal(self, tmp_path):
        provider = WritingProvider(write=False)
        loader = NormalizationMapLoader(str(tmp_path), provider)
        with pytest.raises(NormalizationMapError):
            loader.load(make_request())
        assert provider.calls == 1

    def test_missing_file_without_generator(self, tmp_path):
        loader = NormalizationMapLoader(str(tmp_path))
        with pytest.raises(NormalizationMapError):
            loader.load(make_request())

    def test_generator_that_cannot_start(self, tmp_path):
        provider = ScriptNormalizationMapProvider(str(tmp_path / "missing_generator"))
        loader = NormalizationMapLoader(str(tmp_path / "maps"), provider)
        with pytest.raises(NormalizationMapError, match="missing_generator"):
            loader.load(make_request())

    def test_fractional_grid_dim_rejected(self):
        with pytest.raises(ValueError):
            make_request(grid_dim=20.5)


GENERATOR_SCRIPT = '''
import argparse, os
parser = argparse.ArgumentParser()
for name in ("--maps", "--map_size", "--cell_size", "--min_height", "--max_height",
             "--num_planes", "--velo_minangle", "--velo_hres", "--velo_vres", "--velo_height"):
    parser.add_argument(name, required=True)
a = parser.parse_args()
cells = int(int(a.map_size) / float(a.cell_size))
name = "%s_%.2f_%s_%s_map.txt" % (a.map_size, float(a.cell_size), a.num_planes, a.velo_height)
with open(os.path.join(a.maps, name), "w") as f:
    for _ in range(cells):
        f.write(" ".join(["7.5"] * cells) + "\\n")
'''


class TestScriptProvider:
    def test_command_arguments(self):
        provider = ScriptNormalizationMapProvider("scripts/max_points_map.py")
        cmd = provider.build_command(make_request(), "maps")

        assert cmd[0] == sys.executable
        assert cmd[1] == "scripts/max_points_map.py"
        args = dict(zip(cmd[2::2], cmd[3::2]))
        assert args["--maps"] == os.path.join("maps", "")
        assert args["--map_size"] == "20"
        assert args["--cell_size"] == "0.5"
        assert args["--num_planes"] == "64"
        assert args["--velo_minangle"] == "-24.9"
        assert args["--velo_height"] == "1.73"

    def test_executable_command_used_as_is(self):
        provider = ScriptNormalizationMapProvider(["max_points_map", "--verbose"])
        cmd = provider.build_command(make_request(), "maps")
        assert cmd[:2] == ["max_points_map", "--verbose"]

    def test_runs_external_generator(self, tmp_path):
        script = tmp_path / "max_points_map.py"
        script.write_text(GENERATOR_SCRIPT)
        loader = NormalizationMapLoader(str(tmp_path / "maps"), ScriptNormalizationMapProvider(str(script)))

        table = loader.load(make_request())

        assert table.shape == (40, 40)
        assert np.all(table == 7.5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
