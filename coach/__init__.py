"""coco-coach: voice-driven cognitive training sessions."""

__version__ = "2.0.0"
