"""Keep AppImages executable and their .desktop launcher entries in sync."""

from .config import APP_VERSION as __version__
