import logging

import numpy as np
import pytest

from blobnet import BackendError, Settings, get_backend
from blobnet.core import BackendRegistry, CPUBackend


class TestBlob:
    def test_make_from_shape(self, backend):
        blob = backend.make_blob((3, 4, 5))
        assert blob.shape == (3, 4, 5)
        assert blob.dtype == np.float64
        assert blob.num == 5
        assert blob.fea_size == 12
        assert len(blob) == 60
        assert blob.nbytes == 60 * 8
        np.testing.assert_array_equal(blob.to_numpy(), np.zeros((3, 4, 5)))

    def test_make_from_array_keeps_float_dtype(self, backend):
        host = np.arange(6, dtype=np.float32).reshape(2, 3)
        blob = backend.make_blob(host)
        assert blob.dtype == np.float32
        np.testing.assert_array_equal(blob.to_numpy(), host)

    def test_integer_arrays_use_backend_dtype(self, backend):
        blob = backend.make_blob(np.arange(4).reshape(2, 2))
        assert blob.dtype == backend.dtype

    def test_make_with_explicit_dtype(self, backend):
        assert backend.make_blob((2, 2), dtype=np.float32).dtype == np.float32

    @pytest.mark.parametrize("shape", [(), (0, 3), (2, -1)])
    def test_invalid_shape(self, backend, shape):
        with pytest.raises(ValueError):
            backend.make_blob(shape)

    def test_copy_from_array_and_blob(self, backend, rng):
        host = rng.standard_normal((4, 3))
        a = backend.make_blob((4, 3))
        a.copy_from(host)
        b = backend.make_blob((4, 3))
        b.copy_from(a)
        np.testing.assert_array_equal(b.to_numpy(), host)

    def test_copy_size_mismatch(self, backend):
        blob = backend.make_blob((2, 3))
        with pytest.raises(ValueError):
            blob.copy_from(np.zeros(5))
        with pytest.raises(ValueError):
            blob.copy_from(backend.make_blob((2, 2)))

    def test_copy_across_backends(self, backend):
        other = get_backend('cpu', Settings(seed=0))
        try:
            with pytest.raises(BackendError):
                backend.make_blob((2,)).copy_from(other.make_blob((2,)))
        finally:
            other.shutdown()

    def test_download_is_a_copy(self, cpu_backend):
        blob = cpu_backend.make_blob((2, 2))
        host = blob.to_numpy()
        host[...] = 7
        assert float(blob.to_numpy().sum()) == 0.0

    def test_views_share_storage(self, cpu_backend):
        blob = cpu_backend.make_blob((2, 3, 4))
        blob.matrix()[1, 2] = 5.0
        assert blob.flat()[blob.flat().argmax()] == 5.0
        assert blob.matrix().shape == (6, 4)

    def test_fill(self, backend):
        blob = backend.make_blob((3, 2))
        blob.fill(2.5)
        np.testing.assert_array_equal(blob.to_numpy(), np.full((3, 2), 2.5))

    def test_shutdown_is_idempotent(self, backend):
        blob = backend.make_blob((2, 2))
        blob.shutdown()
        blob.shutdown()
        assert blob.is_released
        assert 'released' in repr(blob)
        with pytest.raises(BackendError):
            blob.data


class TestBackend:
    def test_memory_tracking(self, backend):
        before = len(backend.live_blobs())
        a = backend.make_blob((10, 10))
        b = backend.make_blob((5,), dtype=np.float32)
        assert len(backend.live_blobs()) == before + 2
        assert backend.memory_usage() >= 800 + 20
        a.shutdown()
        b.shutdown()
        assert len(backend.live_blobs()) == before
        assert backend.memory.stats['released'] >= 2

    def test_shutdown_releases_leaked_blobs(self, caplog):
        backend = get_backend('cpu', Settings(seed=0))
        blob = backend.make_blob((3,))
        with caplog.at_level(logging.WARNING, logger="blobnet"):
            backend.shutdown()
        assert blob.is_released
        assert "still alive" in caplog.text
        backend.shutdown()

    def test_context_manager(self):
        with CPUBackend(Settings(seed=0)) as backend:
            assert backend.initialized
            blob = backend.make_blob((2,))
        assert not backend.initialized
        assert blob.is_released

    def test_seeded_rng_is_reproducible(self):
        first = get_backend('cpu', Settings(seed=7))
        second = get_backend('cpu', Settings(seed=7))
        np.testing.assert_array_equal(first.random_normal((4, 3), np.float64),
                                      second.random_normal((4, 3), np.float64))
        first.shutdown()
        second.shutdown()

    def test_random_normal_dtype(self, backend):
        sample = backend.random_normal((8, 2), np.dtype(np.float32))
        assert sample.dtype == np.float32
        assert sample.shape == (8, 2)

    def test_unknown_backend(self):
        with pytest.raises(BackendError, match="Unknown backend"):
            get_backend('tpu', Settings())

    def test_registry_lists_cpu(self):
        assert 'cpu' in BackendRegistry.list_backends()


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.backend == 'cpu'
        assert settings.dtype == 'float64'
        assert settings.seed is None

    def test_invalid_dtype(self):
        with pytest.raises(ValueError):
            Settings(dtype='int8')

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('BLOBNET_DTYPE', 'FLOAT32')
        monkeypatch.setenv('BLOBNET_SEED', '11')
        monkeypatch.setenv('BLOBNET_LOG_LEVEL', 'debug')
        settings = Settings.from_env()
        assert settings.dtype == 'float32'
        assert settings.seed == 11
        assert settings.log_level == 'DEBUG'

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv('BLOBNET_SEED', '11')
        assert Settings.from_env(seed=3).seed == 3

    def test_backend_dtype_follows_settings(self):
        backend = get_backend('cpu', Settings(dtype='float32'))
        assert backend.make_blob((2,)).dtype == np.float32
        backend.shutdown()
