import asyncio
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from site_migrator.parsers.html_rewriter import normalize_candidate_url, rewrite_uploads_in_html


WP = "https://carlagannis.com/blog"
UP = f"{WP}/wp-content/uploads/2021/03"


class RecordingResolver:
    def __init__(self, mapping=None):
        self.mapping = mapping or {}
        self.calls = []

    async def __call__(self, url):
        self.calls.append(url)
        return self.mapping.get(url)


def rewrite(html, resolver, **kwargs):
    return asyncio.run(rewrite_uploads_in_html(html, resolver, wp_base_url=WP, **kwargs))


def test_unresolvable_reference_is_left_byte_identical():
    html = f'<p><img src="{UP}/a-300x200.jpg?ver=1" alt="x"></p>'
    result = rewrite(html, RecordingResolver())
    assert result.html == html
    assert result.mapped == []


def test_same_upload_in_src_and_srcset_is_resolved_once():
    resolver = RecordingResolver({f"{UP}/photo.jpg": "https://cdn.example/blog/photo.jpg"})
    html = (
        f'<img src="{UP}/photo-1024x768.jpg" '
        f'srcset="{UP}/photo-150x150.jpg 150w, {UP}/photo-300x200.jpg 300w">'
    )
    result = rewrite(html, resolver)

    assert resolver.calls == [f"{UP}/photo.jpg"]
    assert result.html == (
        '<img src="https://cdn.example/blog/photo.jpg" '
        'srcset="https://cdn.example/blog/photo.jpg 150w, https://cdn.example/blog/photo.jpg 300w">'
    )
    assert result.mapped == [(f"{UP}/photo.jpg", "https://cdn.example/blog/photo.jpg")]


def test_unresolved_outcome_is_cached_too():
    resolver = RecordingResolver()
    html = f'<a href="{UP}/doc.pdf"><img src="{UP}/doc.pdf"></a>'
    rewrite(html, resolver)
    assert resolver.calls == [f"{UP}/doc.pdf"]


def test_srcset_descriptor_is_preserved_and_partial_mapping_keeps_the_rest():
    resolver = RecordingResolver({f"{UP}/a.jpg": "https://cdn/a.jpg"})
    html = f'<img srcset="{UP}/a-100x100.jpg 1x, {UP}/b.jpg 2x">'
    result = rewrite(html, resolver)
    assert result.html == f'<img srcset="https://cdn/a.jpg 1x, {UP}/b.jpg 2x">'


def test_relative_references_are_absolutized_for_resolution():
    resolver = RecordingResolver({f"{UP}/r.png": "https://cdn/r.png"})
    html = '<img src="/blog/wp-content/uploads/2021/03/r-50x50.png">'
    result = rewrite(html, resolver)
    assert resolver.calls == [f"{UP}/r.png"]
    assert result.html == '<img src="https://cdn/r.png">'


def test_text_outside_attributes_is_not_rewritten():
    resolver = RecordingResolver({f"{UP}/t.jpg": "https://cdn/t.jpg"})
    html = f'<p>See {UP}/t.jpg for details</p><img src=\'{UP}/t.jpg\'>'
    result = rewrite(html, resolver)
    assert result.html == f"<p>See {UP}/t.jpg for details</p><img src='https://cdn/t.jpg'>"


def test_non_upload_links_are_ignored():
    resolver = RecordingResolver()
    html = '<a href="https://carlagannis.com/blog/about/">About</a>'
    assert rewrite(html, resolver).html == html
    assert resolver.calls == []


def test_normalize_candidate_url():
    assert normalize_candidate_url("//cdn.x/a.jpg", WP) == "https://cdn.x/a.jpg"
    assert normalize_candidate_url("/blog/wp-content/uploads/a.jpg", WP) == f"{WP}/wp-content/uploads/a.jpg"
    assert normalize_candidate_url("/wp-content/uploads/a.jpg", WP) == f"{WP}/wp-content/uploads/a.jpg"
    assert normalize_candidate_url("https://a/b.jpg", WP) == "https://a/b.jpg"
