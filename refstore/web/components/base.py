"""
Component base for the refstore host page.

Components render plain HTML strings; htmx attributes are passed as keyword
arguments (`hx_post` -> `hx-post`, `class_` -> `class`).
"""

import html
from typing import Any, Optional


def _attr_name(key: str) -> str:
    return key[:-1] if key.endswith("_") else key.replace("_", "-")


class Component:
    def render(self) -> str:
        raise NotImplementedError(f"{type(self).__name__}.render()")

    def __str__(self) -> str:
        return self.render()

    @staticmethod
    def escape(text: Optional[str]) -> str:
        """HTML-escape `text` (quotes included); None renders as ""."""
        if text is None:
            return ""
        return html.escape(str(text), quote=True)

    @staticmethod
    def classes(*names: str, **toggles: bool) -> str:
        """Join class names, adding each toggle whose value is truthy."""
        return " ".join([*names, *(name for name, on in toggles.items() if on)])

    @classmethod
    def attributes(cls, **attrs: Any) -> str:
        """Render attributes; True emits a bare flag, False/None are dropped."""
        parts = []
        for key, value in attrs.items():
            if value is None or value is False:
                continue
            name = _attr_name(key)
            parts.append(name if value is True else f'{name}="{cls.escape(value)}"')
        return " ".join(parts)
