"""Top-level utils package.

Common infra helpers shared by the tutor modules: logger, error handling
and feature flags.  Everything is re-exported so callers can simply do
``from utils import get_logger`` or ``from utils import StoreError``.
"""

from .logging import *  # noqa: F401,F403
from .error_handler import *  # noqa: F401,F403
from .feature_flags import *  # noqa: F401,F403
