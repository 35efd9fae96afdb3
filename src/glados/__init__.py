"""GLaDOS: safety-gated team assistant for robotics teams."""

__version__ = "0.1.0"
