"""
Tests for the particle store and configuration.
"""

import json

import numpy as np
import pytest

from fluid_sph import FluidConfig, SphereCollider, ParticleArrays, PARTICLE_DTYPE
from fluid_sph.errors import ConfigurationError


class TestSpawnLattice:
    """Initial particle layout."""

    def test_lattice_without_jitter(self):
        particles = ParticleArrays.spawn_lattice((2, 3, 4), (1.0, -1.0, 0.5), 0.1, 0.0)
        positions = particles.get_positions()

        assert particles.n_particles == 24
        # z varies fastest, then y, then x
        np.testing.assert_allclose(positions[0], [1.0, -1.0, 0.5], atol=1e-6)
        np.testing.assert_allclose(positions[1], [1.0, -1.0, 0.7], atol=1e-6)
        np.testing.assert_allclose(positions[4], [1.0, -0.8, 0.5], atol=1e-6)
        np.testing.assert_allclose(positions[12], [1.2, -1.0, 0.5], atol=1e-6)
        np.testing.assert_allclose(positions[-1], [1.2, -0.6, 1.1], atol=1e-6)

    def test_jitter_lies_on_sphere(self):
        radius, jitter = 0.1, 0.3
        base = ParticleArrays.spawn_lattice((3, 3, 3), (0.0, 0.0, 0.0), radius, 0.0)
        jittered = ParticleArrays.spawn_lattice((3, 3, 3), (0.0, 0.0, 0.0), radius, jitter,
                                                rng=np.random.default_rng(0))
        offsets = jittered.get_positions() - base.get_positions()
        np.testing.assert_allclose(np.linalg.norm(offsets, axis=1), radius * jitter, rtol=1e-4)

    def test_seed_is_reproducible(self):
        a = ParticleArrays.spawn_lattice((2, 2, 2), (0, 0, 0), 0.1, 0.5, rng=np.random.default_rng(3))
        b = ParticleArrays.spawn_lattice((2, 2, 2), (0, 0, 0), 0.1, 0.5, rng=np.random.default_rng(3))
        np.testing.assert_array_equal(a.get_positions(), b.get_positions())

    def test_other_fields_start_at_zero(self):
        particles = ParticleArrays.spawn_lattice((2, 2, 2), (0, 0, 0), 0.1, 0.2,
                                                 rng=np.random.default_rng(1))
        assert np.all(particles.get_velocities() == 0.0)
        assert np.all(particles.get_forces() == 0.0)
        assert np.all(particles.density == 0.0)
        assert np.all(particles.pressure == 0.0)

    def test_allocate_rejects_empty(self):
        with pytest.raises(ValueError):
            ParticleArrays.allocate(0)


class TestRecordLayout:
    """Packed 11-scalar particle records."""

    def test_record_is_44_bytes_in_field_order(self):
        assert PARTICLE_DTYPE.itemsize == 44
        assert PARTICLE_DTYPE.names == ('pressure', 'density', 'force', 'velocity', 'position')
        assert PARTICLE_DTYPE.fields['position'][1] == 32

    def test_records_preserve_state(self):
        particles = ParticleArrays.spawn_lattice((2, 2, 3), (0, 0, 0), 0.1, 0.2,
                                                 rng=np.random.default_rng(5))
        particles.velocity_y[:] = np.arange(12, dtype=np.float32)
        particles.force_z[:] = -1.5
        particles.density[:] = 3.0
        particles.pressure[:] = 6.0

        records = particles.to_records()
        assert records['velocity'][7, 1] == 7.0

        raw = np.frombuffer(records.tobytes(), dtype=np.uint8)
        assert raw.size == 12 * 44

        restored = ParticleArrays.from_records(raw)
        np.testing.assert_array_equal(restored.get_positions(), particles.get_positions())
        np.testing.assert_array_equal(restored.get_velocities(), particles.get_velocities())
        np.testing.assert_array_equal(restored.get_forces(), particles.get_forces())
        np.testing.assert_array_equal(restored.density, particles.density)
        np.testing.assert_array_equal(restored.pressure, particles.pressure)

    def test_nonfinite_detection(self):
        particles = ParticleArrays.allocate(5)
        assert particles.count_nonfinite() == 0
        particles.position_x[1] = np.nan
        particles.velocity_z[3] = np.inf
        np.testing.assert_array_equal(particles.nonfinite_mask(), [False, True, False, True, False])


class TestConfig:
    """FluidConfig validation and serialization."""

    def test_defaults_are_valid(self):
        config = FluidConfig()
        assert config.total_particles == 1000
        assert config.cell_size == pytest.approx(0.2)
        assert config.smoothing_radius == pytest.approx(0.1)
        assert config.rest_density == 0.0

    @pytest.mark.parametrize("kwargs", [
        {'num_to_spawn': (0, 1, 1)},
        {'particle_radius': 0.0},
        {'bound_damping': 1.5},
        {'bound_damping': -0.1},
        {'timestep': 0.0},
        {'particle_mass': -1.0},
        {'box_size': (1.0, 0.0, 1.0)},
        {'work_group_size': 0},
        {'backend': 'gpu'},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            FluidConfig(**kwargs)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            FluidConfig(spawn_jitter=-1.0)

    def test_camel_case_keys(self):
        config = FluidConfig.from_dict({
            'numToSpawn': [2, 2, 2],
            'boxSize': [1, 2, 3],
            'particleRadius': 0.05,
            'gasConstant': 5.0,
            'gravity_y': 0.0,
        })
        assert config.num_to_spawn == (2, 2, 2)
        assert config.box_size == (1.0, 2.0, 3.0)
        assert config.gas_constant == 5.0

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError):
            FluidConfig.from_dict({'restingDensity': 1.0})

    def test_json_round_trip(self, tmp_path):
        config = FluidConfig(num_to_spawn=(3, 2, 1), seed=11, backend='numba')
        path = tmp_path / "fluid.json"
        config.save_json(path)
        assert json.loads(path.read_text())['num_to_spawn'] == [3, 2, 1]
        assert FluidConfig.load_json(path) == config

    def test_with_box_size_validates(self):
        config = FluidConfig()
        assert config.with_box_size((1.0, 1.0, 1.0)).box_half_extents == (0.5, 0.5, 0.5)
        with pytest.raises(ConfigurationError):
            config.with_box_size((1.0, -1.0, 1.0))

    def test_collider_validation(self):
        assert SphereCollider.none().radius == 0.0
        with pytest.raises(ConfigurationError):
            SphereCollider((0, 0, 0), -1.0)
