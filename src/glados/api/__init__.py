"""HTTP surface: alert acknowledgment links and health."""

from glados.api.server import AckServer

__all__ = ["AckServer"]
