"""
Layout Component for refstore

Minimal page wrapper for the host demo page.
"""

from .base import Component


HTMX_SRC = "https://unpkg.com/htmx.org@1.9.12"


class Layout(Component):
    """Complete HTML document around pre-rendered content"""

    def __init__(self, title: str, content: str, user_email: str | None = None):
        """
        Args:
            title: Page title (will be escaped)
            content: Main content HTML (pre-rendered components)
            user_email: Shown in the header when signed in
        """
        self.title = title
        self.content = content
        self.user_email = user_email

    def render(self) -> str:
        who = (
            f'<span class="user-email">{self.escape(self.user_email)}</span>'
            if self.user_email
            else '<span class="user-email muted">Not signed in</span>'
        )
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta http-equiv="X-Content-Type-Options" content="nosniff">
    <title>{self.escape(self.title)} - refstore</title>
    <script src="{HTMX_SRC}"></script>
</head>
<body>
    <header class="page-header">
        <h1>{self.escape(self.title)}</h1>
        {who}
    </header>
    <main id="main-content" role="main">
        {self.content}
    </main>
</body>
</html>"""
