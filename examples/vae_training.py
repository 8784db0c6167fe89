import numpy as np
from blobnet import (ElementWiseLayer, EncoderLossLayer, GaussianReconLossLayer, InnerProductLayer,
                     Net, RandomNormalLayer, Settings, get_backend)
from blobnet.nn.layers import Multiply
from blobnet.nn.neurons import Exponential, Tanh
from blobnet.optim import Adam

# Generate synthetic data: 2-D latent points embedded in 8 dimensions
rng = np.random.default_rng(42)
n_samples, n_features, n_latent, n_hidden = 64, 8, 2, 16
latent = rng.standard_normal((n_latent, n_samples))
mixing = rng.standard_normal((n_features, n_latent))
X = np.tanh(mixing @ latent) + 0.05 * rng.standard_normal((n_features, n_samples))  # batch on the last axis

backend = get_backend(settings=Settings.from_env(seed=42))

# Create model: encoder, reparameterization and Gaussian decoder
layers = [
    InnerProductLayer(name='enc', bottoms=('x',), tops=('h',), output_dim=n_hidden, neuron=Tanh()),
    InnerProductLayer(name='z_mean', bottoms=('h',), tops=('z_mean',), output_dim=n_latent),
    InnerProductLayer(name='z_sd', bottoms=('h',), tops=('z_sd',), output_dim=n_latent, neuron=Exponential()),
    EncoderLossLayer(name='kl', bottoms=('z_mean', 'z_sd')),
    RandomNormalLayer(name='noise', tops=('eps',), output_dims=(n_latent,), batch_sizes=(n_samples,)),
    ElementWiseLayer(name='scale', bottoms=('z_sd', 'eps'), tops=('scaled',), operation=Multiply()),
    ElementWiseLayer(name='shift', bottoms=('z_mean', 'scaled'), tops=('z',)),
    InnerProductLayer(name='dec', bottoms=('z',), tops=('h_dec',), output_dim=n_hidden, neuron=Tanh()),
    InnerProductLayer(name='x_mean', bottoms=('h_dec',), tops=('x_mean',), output_dim=n_features),
    InnerProductLayer(name='x_sd', bottoms=('h_dec',), tops=('x_sd',), output_dim=n_features,
                      neuron=Exponential()),
    GaussianReconLossLayer(name='recon', bottoms=('x_mean', 'x_sd', 'x')),
]

with Net('vae', backend, layers, inputs={'x': X}) as net:
    optimizer = Adam(net.parameters(), lr=0.01)

    # Training loop
    epochs = 500
    for epoch in range(epochs):
        loss = net.forward()
        net.backward()
        optimizer.step()

        if epoch % 50 == 0:
            print(f"Epoch {epoch}, Loss: {loss:.4f} "
                  f"(KL: {net.state('kl').loss:.4f}, recon: {net.state('recon').loss:.4f})")

    # Inspect the encoding of the first sample
    net.forward()
    print(f"\nLatent mean of sample 0: {net.blob('z_mean').to_numpy()[:, 0]}")
    print(f"Latent sd of sample 0:   {net.blob('z_sd').to_numpy()[:, 0]}")

backend.shutdown()
