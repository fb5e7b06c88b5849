"""Error-diffusion dithering for still images and video frame streams."""

__version__ = "0.1.0"
