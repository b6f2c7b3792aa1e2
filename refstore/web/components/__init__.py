# refstore component system
# Pure Python components for HTML generation

from .base import Component
from .layout import Layout
from .storage_actions import StorageActions, SignInHint, DEFAULT_RESPONSE_IDS

__all__ = [
    "Component",
    "Layout",
    "StorageActions",
    "SignInHint",
    "DEFAULT_RESPONSE_IDS",
]
