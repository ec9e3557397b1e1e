"""ReplyDesk: grounded AI replies for business messaging channels."""

from .__version__ import __version__

__all__ = ["__version__"]
