"""
Minimal example demonstrating Unitary RNN training on a sine wave.

This script trains a Unitary layer followed by a Dense readout to predict the
next sample of a noisy sine wave from a short window of past samples, then
compares predictions with the targets.
"""

import math
import logging
import torch
import sys
import os

# Add parent directory to path to import hal_nn
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(parent_dir)

from hal_nn import Sequential, SGD, UnitaryConfig, DenseConfig, set_seed, count_parameters
from hal_nn.utils import get_device

# Set device and seed
device = get_device() if torch.cuda.is_available() else torch.device("cpu")
set_seed(42)


def make_windows(num_samples: int, seq_len: int, noise_level: float = 0.05):
    """Build (x, y) where x[i] is a window of the wave and y[i] the sample after it."""
    t = torch.linspace(0, 8 * math.pi, num_samples + seq_len + 1)
    wave = torch.sin(t) + noise_level * torch.randn_like(t)
    x = torch.stack([wave[i:i + seq_len] for i in range(num_samples)]).unsqueeze(-1)
    y = torch.stack([wave[i + seq_len] for i in range(num_samples)]).unsqueeze(-1)
    return x, y


def main():
    """Main function containing the complete training and evaluation pipeline."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    print("="*60)
    print("UNITARY RNN SINE WAVE EXAMPLE")
    print("="*60)
    print(f"Device: {device}")
    print()

    # Hyperparameters
    batch_size = 16
    seq_len = 10
    hidden_size = 16
    num_epochs = 20
    lr = 0.05

    print("Hyperparameters:")
    print(f"  Batch size: {batch_size}")
    print(f"  Sequence length: {seq_len}")
    print(f"  Hidden size: {hidden_size}")
    print(f"  Learning rate: {lr}")
    print(f"  Epochs: {num_epochs}")
    print()

    x, y = make_windows(num_samples=256, seq_len=seq_len)
    print(f"Training samples: {x.shape[0]}")
    print()

    model = Sequential(SGD(lr=lr, momentum=0.9, clip=1.0), loss="l2", device=device)
    model.add(UnitaryConfig(input_size=1, hidden_size=hidden_size, output_size=8,
                            activation="tanh"))
    model.add(DenseConfig(input_size=8, output_size=1, activation="linear"))
    model.info()

    print(f"Model parameters: {count_parameters(model.manager):,}")
    print()

    print("Starting training...")
    print("-" * 60)
    history = model.fit(x, y, batch_size=batch_size, epochs=num_epochs, verbose=False)
    iterations = x.shape[0] // batch_size
    for epoch in range(num_epochs):
        epoch_loss = sum(history[epoch * iterations:(epoch + 1) * iterations]) / iterations
        print(f"Epoch {epoch+1}/{num_epochs}: loss {epoch_loss:.5f}")
    print()

    print("="*60)
    print("INFERENCE")
    print("="*60)
    prediction = model.forward(x[:8])[:, -1]
    for i in range(8):
        print(f"  Sample {i}: Pred={prediction[i, 0].item():+.3f}, True={y[i, 0].item():+.3f}")


if __name__ == "__main__":
    main()
