from __future__ import annotations

from refstore.web.components import DEFAULT_RESPONSE_IDS, Layout, SignInHint, StorageActions


def test_buttons_post_with_their_response_ids():
    html = StorageActions("docs/a.txt", response_ids={"list": "my-list"}).render()
    assert 'hx-post="/api/storage/list?response_id=my-list"' in html
    assert 'hx-post="/api/storage/download?response_id=dl"' in html
    assert 'data-upload-url="/api/storage/upload?response_id=up"' in html
    assert 'class="btn btn-delete danger"' in html
    assert 'value="docs/a.txt"' in html
    assert DEFAULT_RESPONSE_IDS["list"] == "ls"


def test_reference_value_is_escaped():
    html = StorageActions('"><script>x</script>').render()
    assert "<script>x</script>" not in html
    assert "&quot;&gt;&lt;script&gt;" in html


def test_layout_wraps_content_and_escapes_email():
    page = Layout("Files", SignInHint().render(), user_email="<b>@example.org").render()
    assert page.startswith("<!DOCTYPE html>")
    assert "Sign in to manage files." in page
    assert "&lt;b&gt;@example.org" in page
    assert "<title>Files - refstore</title>" in page
