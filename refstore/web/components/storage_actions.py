"""
Storage action panel

Buttons that trigger StorageClient operations through the JSON API. Each
button posts with its own response id, so the outcome becomes readable at
`/api/inputs/{response_id}`. The host renders this panel only through
`AuthGate.when_signed_in`.
"""

from typing import Dict, Optional
from urllib.parse import quote

from .base import Component


DEFAULT_RESPONSE_IDS: Dict[str, str] = {
    "upload": "up",
    "download": "dl",
    "delete": "del",
    "list": "ls",
    "metadata": "meta",
}

# The selected file is posted as the raw request body (no multipart).
UPLOAD_SCRIPT = """
document.querySelectorAll("[data-upload-url]").forEach(function (btn) {
    btn.addEventListener("click", function () {
        var input = document.getElementById("upload-file");
        var file = input && input.files && input.files[0];
        if (!file) { return; }
        var url = btn.dataset.uploadUrl + "&filename=" + encodeURIComponent(file.name);
        fetch(url, {method: "POST", body: file, headers: {"Content-Type": file.type || "application/octet-stream"}});
    });
});
"""


class StorageActions(Component):
    """Reference form plus one button per storage operation"""

    def __init__(self, reference: str, response_ids: Optional[Dict[str, str]] = None):
        self.reference = reference
        self.response_ids = {**DEFAULT_RESPONSE_IDS, **(response_ids or {})}

    def _button(self, op: str, label: str) -> str:
        rid = self.response_ids[op]
        attrs = self.attributes(
            type="button",
            class_=self.classes("btn", f"btn-{op}", danger=(op == "delete")),
            hx_post=f"/api/storage/{op}?response_id={quote(rid)}",
            hx_swap="none",
            data_response_id=rid,
        )
        return f"<button {attrs}>{self.escape(label)}</button>"

    def render(self) -> str:
        upload_rid = quote(self.response_ids["upload"])
        return f"""
    <section class="storage-actions" aria-label="Storage">
        <form class="reference-form" hx-put="/api/storage/reference" hx-swap="none">
            <label for="reference-path">Reference</label>
            <input id="reference-path" name="path" type="text" value="{self.escape(self.reference)}">
            <button type="submit" class="btn">Set reference</button>
        </form>
        <div class="upload-form">
            <input id="upload-file" type="file" name="file">
            <button type="button" class="btn btn-upload" data-upload-url="/api/storage/upload?response_id={upload_rid}">Upload</button>
        </div>
        <div class="storage-buttons">
            {self._button("download", "Download")}
            {self._button("delete", "Delete")}
            {self._button("list", "List")}
            {self._button("metadata", "Metadata")}
        </div>
    </section>
    <script>{UPLOAD_SCRIPT}</script>"""


class SignInHint(Component):
    """Placeholder shown instead of the action panel for signed-out visitors"""

    def render(self) -> str:
        return '<p class="signin-hint">Sign in to manage files.</p>'
