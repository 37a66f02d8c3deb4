# src/lidar_bev/visualization.py
import os

import matplotlib.pyplot as plt
import numpy as np

from .bird_view import HEIGHT_CHANNEL, DENSITY_CHANNEL, INTENSITY_CHANNEL
from .ground import GROUND_SENTINEL

CHANNEL_TITLES = (
    (HEIGHT_CHANNEL, 'Height'),
    (DENSITY_CHANNEL, 'Density'),
    (INTENSITY_CHANNEL, 'Intensity'),
)


def plot_bird_view(frame, filename="bev_output.png", title="Bird View"):
    """
    Save the three bird view channels and the ground raster side by side.

    Args:
        frame: BirdViewFrame from the pipeline
        filename: Path to save the image
        title: Figure title
    """
    fig, axes = plt.subplots(1, 4, figsize=(20, 5))

    for ax, (channel, name) in zip(axes, CHANNEL_TITLES):
        ax.imshow(frame.bird_view[..., channel], cmap='gray', vmin=0, vmax=255)
        ax.set_title(name)
        ax.axis('off')

    # Unobserved ground cells would dominate the color scale
    ground = np.ma.masked_greater_equal(frame.ground, GROUND_SENTINEL)
    im = axes[3].imshow(ground, cmap='viridis')
    axes[3].set_title('Ground elevation [m]')
    axes[3].axis('off')
    fig.colorbar(im, ax=axes[3], fraction=0.046, pad=0.04)

    fig.suptitle(title)

    out_dir = os.path.dirname(filename)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    plt.savefig(filename, dpi=150, bbox_inches='tight')
    plt.close(fig)
