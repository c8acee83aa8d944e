"""Runtime composition."""

from mosaic.core.runtime import Runtime

__all__ = ["Runtime"]
