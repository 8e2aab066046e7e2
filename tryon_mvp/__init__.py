"""Virtual try-on canvas: person segmentation and clothing compositing."""

__version__ = "1.0.0"
