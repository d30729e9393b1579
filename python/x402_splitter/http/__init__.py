"""HTTP surface of the splitter protocol."""

from .app import create_app

__all__ = ["create_app"]
