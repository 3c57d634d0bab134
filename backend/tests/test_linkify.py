"""
URL linkification.
"""

from frontdoor.linkify import Link, linkify_text, render_html


def test_plain_text_is_single_part():
    assert linkify_text("no links here") == ["no links here"]


def test_empty_text():
    assert linkify_text("") == [""]


def test_splits_around_urls():
    parts = linkify_text("see https://a.example/x and http://b.example ok")
    assert parts == ["see ", Link("https://a.example/x"), " and ", Link("http://b.example"), " ok"]


def test_url_at_start_and_end():
    assert linkify_text("https://a.example") == [Link("https://a.example")]


def test_render_html_escapes_text_and_links():
    html = render_html("<b> https://a.example/?q=1&r=2")
    assert html == (
        '&lt;b&gt; <a href="https://a.example/?q=1&amp;r=2" target="_blank" '
        'rel="noopener noreferrer">https://a.example/?q=1&amp;r=2</a>'
    )


def test_endpoint(client):
    resp = client.post("/api/linkify", json={"text": "go to https://a.example now"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["parts"] == [
        {"type": "text", "text": "go to "},
        {"type": "link", "href": "https://a.example"},
        {"type": "text", "text": " now"},
    ]
    assert '<a href="https://a.example"' in body["html"]


def test_endpoint_requires_text(client):
    resp = client.post("/api/linkify", json={})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Text is required"}
