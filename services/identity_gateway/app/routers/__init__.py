"""Router exports for the identity gateway."""

from . import oauth

__all__ = ["oauth"]
