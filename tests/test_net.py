import logging

import numpy as np
import pytest

from blobnet import (ConfigurationError, ElementWiseLayer, EncoderLossLayer,
                     GaussianReconLossLayer, IdentityLayer, InnerProductLayer, Net, PowerLayer,
                     RandomNormalLayer, ShapeMismatchError, SquareLossLayer, TiedInnerProductLayer,
                     UnboundSymbolError)
from blobnet.nn.layers import Multiply
from blobnet.nn.neurons import Exponential, Tanh
from blobnet.util.gradcheck import numerical_gradient

P, H, Z, N = 6, 5, 3, 8

# small weights keep the exponential units in a well-conditioned range
SMALL_INIT = dict(weight_init='gaussian', weight_std=0.3)


def vae_layers(noise_from_input=True):
    layers = [
        InnerProductLayer(name='enc', bottoms=('x',), tops=('h',), output_dim=H, neuron=Tanh(), **SMALL_INIT),
        InnerProductLayer(name='z_mean', bottoms=('h',), tops=('z_mean',), output_dim=Z, **SMALL_INIT),
        InnerProductLayer(name='z_sd', bottoms=('h',), tops=('z_sd',), output_dim=Z, neuron=Exponential(), **SMALL_INIT),
        EncoderLossLayer(name='kl', bottoms=('z_mean', 'z_sd')),
    ]
    if not noise_from_input:
        layers.append(RandomNormalLayer(name='noise', tops=('eps',), output_dims=(Z,), batch_sizes=(N,)))
    layers += [
        ElementWiseLayer(name='scale', bottoms=('z_sd', 'eps'), tops=('scaled',), operation=Multiply()),
        ElementWiseLayer(name='shift', bottoms=('z_mean', 'scaled'), tops=('z',)),
        InnerProductLayer(name='dec_mu', bottoms=('z',), tops=('mu',), output_dim=P, neuron=Tanh(), **SMALL_INIT),
        InnerProductLayer(name='dec_sd', bottoms=('z',), tops=('sigma',), output_dim=P, neuron=Exponential(), **SMALL_INIT),
        GaussianReconLossLayer(name='recon', bottoms=('mu', 'sigma', 'x')),
    ]
    return layers


@pytest.fixture
def vae(backend, rng):
    inputs = {'x': rng.standard_normal((P, N)), 'eps': rng.standard_normal((Z, N))}
    net = Net('vae', backend, vae_layers(), inputs=inputs)
    yield net
    net.shutdown()


def check_parameter_gradients(net, rtol=1e-4, atol=1e-5):
    net.forward()
    net.backward()
    for param in net.parameters():
        analytical = param.gradient.to_numpy()
        original = param.blob.to_numpy()

        def objective(v, param=param):
            param.blob.copy_from(v)
            return net.forward()

        numerical = numerical_gradient(objective, original.copy())
        param.blob.copy_from(original)
        assert np.allclose(analytical, numerical, rtol=rtol, atol=atol), param.full_name


class TestNetConstruction:
    def test_unbound_bottom_releases_everything(self, backend):
        before = len(backend.live_blobs())
        layers = [
            InnerProductLayer(name='ip', bottoms=('x',), tops=('h',), output_dim=2),
            SquareLossLayer(name='loss', bottoms=('h', 'label')),
        ]
        with pytest.raises(UnboundSymbolError, match="label"):
            Net('broken', backend, layers, inputs={'x': (3, 4)})
        assert len(backend.live_blobs()) == before

    def test_rebinding_requires_same_shape(self, cpu_backend):
        layers = [
            IdentityLayer(name='copy', bottoms=('x',), tops=('a',)),
            IdentityLayer(name='clash', bottoms=('y',), tops=('a',)),
        ]
        with pytest.raises(ShapeMismatchError):
            Net('rebind', cpu_backend, layers, inputs={'x': (2, 3), 'y': (3, 2)})

    def test_rebinding_same_shape(self, cpu_backend, rng):
        layers = [
            IdentityLayer(name='copy', bottoms=('x',), tops=('a',)),
            PowerLayer(name='square', bottoms=('a',), tops=('a',), power=2.0),
        ]
        x = rng.standard_normal((2, 3))
        with Net('rebind', cpu_backend, layers, inputs={'x': x}) as net:
            net.forward()
            np.testing.assert_allclose(net.blob('a').to_numpy(), x ** 2)

    def test_duplicate_layer_names(self, cpu_backend):
        layers = [
            IdentityLayer(name='same', bottoms=('x',), tops=('a',)),
            IdentityLayer(name='same', bottoms=('a',), tops=('b',)),
        ]
        with pytest.raises(ConfigurationError, match="duplicate"):
            Net('dup', cpu_backend, layers, inputs={'x': (2, 2)})

    def test_graph_edges(self, vae):
        graph = vae.graph
        assert graph.has_edge('enc', 'z_mean')
        assert graph.has_edge('enc', 'z_sd')
        assert graph.edges['z_mean', 'shift']['symbols'] == ['z_mean']
        assert graph.nodes['recon']['is_loss']

    def test_layer_outside_loss_path_warns(self, cpu_backend, caplog):
        layers = [
            IdentityLayer(name='dangling', bottoms=('x',), tops=('unused',)),
            SquareLossLayer(name='loss', bottoms=('x', 'label')),
        ]
        with caplog.at_level(logging.WARNING, logger="blobnet"):
            net = Net('warn', cpu_backend, layers, inputs={'x': (2, 3), 'label': (2, 3)})
        assert "'dangling' does not feed any loss layer" in caplog.text
        net.shutdown()

    def test_state_and_parameter_lookup(self, vae):
        assert vae.state('enc').layer.name == 'enc'
        assert len(vae.parameters()) == 10
        with pytest.raises(KeyError):
            vae.state('missing')
        with pytest.raises(KeyError):
            vae.blob('missing')


class TestNetPasses:
    def test_loss_is_sum_of_loss_layers(self, vae):
        loss = vae.forward()
        assert loss == pytest.approx(vae.state('kl').loss + vae.state('recon').loss)
        assert np.isfinite(loss)

    def test_parameter_gradients(self, vae):
        check_parameter_gradients(vae)

    def test_fan_out_diffs_are_summed(self, vae):
        vae.forward()
        vae.backward()
        # z_mean feeds both the KL loss and the reparameterization
        n = N
        kl_part = 2 * vae.blob('z_mean').to_numpy() / n
        shift_diff = vae.diff('z').to_numpy()
        np.testing.assert_allclose(vae.diff('z_mean').to_numpy(), kl_part + shift_diff, rtol=1e-10, atol=1e-12)

    def test_backward_resets_parameter_gradients(self, vae):
        vae.forward()
        vae.backward()
        first = [p.gradient.to_numpy() for p in vae.parameters()]
        vae.backward()
        for before, param in zip(first, vae.parameters()):
            np.testing.assert_array_equal(param.gradient.to_numpy(), before)

    def test_deterministic(self, vae):
        first = vae.forward()
        vae.backward()
        grads = [p.gradient.to_numpy() for p in vae.parameters()]
        assert vae.forward() == first
        vae.backward()
        for before, param in zip(grads, vae.parameters()):
            np.testing.assert_array_equal(param.gradient.to_numpy(), before)

    def test_feed(self, vae, rng):
        x = rng.standard_normal((P, N))
        vae.feed('x', x)
        np.testing.assert_array_equal(vae.blob('x').to_numpy(), x)
        with pytest.raises(KeyError):
            vae.feed('h', x)
        with pytest.raises(ValueError):
            vae.feed('x', np.zeros(3))

    def test_sampled_noise(self, cpu_backend, rng):
        net = Net('vae', cpu_backend, vae_layers(noise_from_input=False),
                  inputs={'x': rng.standard_normal((P, N))})
        first = net.forward()
        second = net.forward()
        assert first != second
        net.backward()
        assert net.diff('eps') is None
        net.shutdown()


class TestTiedAutoencoder:
    def build(self, backend, x):
        layers = [
            InnerProductLayer(name='enc', bottoms=('x',), tops=('code',), output_dim=3, neuron=Tanh(), **SMALL_INIT),
            TiedInnerProductLayer(name='dec', bottoms=('code',), tops=('recon',), tied_param_key='enc'),
            SquareLossLayer(name='loss', bottoms=('recon', 'x')),
        ]
        return Net('tied', backend, layers, inputs={'x': x})

    def test_gradients(self, cpu_backend, rng):
        with self.build(cpu_backend, rng.standard_normal((P, 10))) as net:
            assert [p.full_name for p in net.parameters()] == ['enc.weight', 'enc.bias', 'dec.bias']
            check_parameter_gradients(net)

    def test_tied_layer_before_owner(self, cpu_backend):
        layers = [
            TiedInnerProductLayer(name='dec', bottoms=('x',), tops=('recon',), tied_param_key='enc'),
        ]
        with pytest.raises(ConfigurationError):
            Net('tied', cpu_backend, layers, inputs={'x': (3, 4)})


class TestNetLifecycle:
    def test_shutdown_releases_all_blobs(self, backend, rng):
        before = len(backend.live_blobs())
        net = Net('vae', backend, vae_layers(),
                  inputs={'x': rng.standard_normal((P, N)), 'eps': rng.standard_normal((Z, N))})
        assert len(backend.live_blobs()) > before
        net.shutdown()
        net.shutdown()
        assert len(backend.live_blobs()) == before

    def test_context_manager(self, cpu_backend):
        before = len(cpu_backend.live_blobs())
        layers = [IdentityLayer(name='copy', bottoms=('x',), tops=('y',))]
        with Net('ctx', cpu_backend, layers, inputs={'x': (2, 2)}) as net:
            net.forward()
        assert net.released
        assert len(cpu_backend.live_blobs()) == before


def test_noise_pipeline(backend, rng):
    x = rng.standard_normal((4, 6))
    layers = [
        RandomNormalLayer(name='noise', tops=('eps',), output_dims=(4,), batch_sizes=(6,)),
        PowerLayer(name='affine', bottoms=('eps',), tops=('scaled',), scale=2.0, shift=1.0),
        ElementWiseLayer(name='add', bottoms=('x', 'scaled'), tops=('noisy',)),
        IdentityLayer(name='rename', bottoms=('noisy',), tops=('pred',)),
        SquareLossLayer(name='loss', bottoms=('pred', 'x')),
    ]
    with Net('noise', backend, layers, inputs={'x': x}) as net:
        loss = net.forward()
        eps = net.blob('eps').to_numpy()
        np.testing.assert_allclose(net.blob('pred').to_numpy(), x + 1.0 + 2.0 * eps, rtol=1e-12)
        assert loss == pytest.approx(0.5 * np.sum((1.0 + 2.0 * eps) ** 2) / 6)
        net.backward()


class TestFanOut:
    def build(self, backend, x, label):
        layers = [
            IdentityLayer(name='copy', bottoms=('x',), tops=('a',)),
            SquareLossLayer(name='to_input', bottoms=('a', 'x')),
            SquareLossLayer(name='to_label', bottoms=('a', 'label')),
        ]
        return Net('fan-out', backend, layers, inputs={'x': x, 'label': label})

    def test_consumer_diffs_are_summed(self, backend, rng):
        x, label = rng.standard_normal((3, 4)), rng.standard_normal((3, 4))
        with self.build(backend, x, label) as net:
            loss = net.forward()
            net.backward()
            assert loss == pytest.approx(0.5 * np.sum((x - label) ** 2) / 4)
            # first consumer contributes (a - x) / n == 0, second (a - label) / n
            np.testing.assert_allclose(net.diff('a').to_numpy(), (x - label) / 4, rtol=1e-12)

    def test_repeated_backward_does_not_accumulate(self, cpu_backend, rng):
        x, label = rng.standard_normal((2, 5)), rng.standard_normal((2, 5))
        with self.build(cpu_backend, x, label) as net:
            net.forward()
            net.backward()
            first = net.diff('a').to_numpy()
            net.backward()
            np.testing.assert_array_equal(net.diff('a').to_numpy(), first)

    def test_three_consumers(self, cpu_backend, rng):
        x = rng.standard_normal((2, 3))
        layers = [
            PowerLayer(name='double', bottoms=('x',), tops=('a',), scale=2.0),
            SquareLossLayer(name='l1', bottoms=('a', 'x')),
            PowerLayer(name='square', bottoms=('a',), tops=('b',), power=2.0),
            SquareLossLayer(name='l2', bottoms=('b', 'x')),
            SquareLossLayer(name='l3', bottoms=('a', 'x')),
        ]
        with Net('fan-out', cpu_backend, layers, inputs={'x': x}) as net:
            net.forward()
            net.backward()
            a = 2 * x
            b = a ** 2
            expected = 2 * (a - x) / 3 + 2 * a * (b - x) / 3
            np.testing.assert_allclose(net.diff('a').to_numpy(), expected, rtol=1e-12)
