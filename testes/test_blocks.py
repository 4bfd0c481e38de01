import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import json

from site_migrator.models.content import HtmlBlock, ImageBlock, decode_block, decode_blocks, encode_blocks


def test_tagged_blocks_decode_by_tag():
    assert decode_block({"type": "html", "html": "<p/>"}) == HtmlBlock(html="<p/>")
    assert decode_block({"type": "image", "src": "a.jpg", "alt": "A"}) == ImageBlock(src="a.jpg", alt="A")


def test_untagged_blocks_infer_the_variant_from_fields():
    assert decode_block({"html": "<b>x</b>"}) == HtmlBlock(html="<b>x</b>")
    assert decode_block({"src": "b.png", "width": 4, "height": 3}) == ImageBlock(src="b.png", width=4, height=3)


def test_unrecognized_blocks_are_dropped():
    raw = json.dumps([{"type": "video", "src": "v.mp4"}, {"alt": "no src"}, "junk", {"html": "ok"}])
    assert decode_blocks(raw) == [HtmlBlock(html="ok")]


def test_encoded_blocks_carry_their_tag_and_omit_empty_fields():
    encoded = json.loads(encode_blocks([HtmlBlock(html="h"), ImageBlock(src="s.jpg")]))
    assert encoded == [{"type": "html", "html": "h"}, {"type": "image", "src": "s.jpg"}]


def test_decode_accepts_empty_and_non_list_input():
    assert decode_blocks("") == []
    assert decode_blocks({"html": "x"}) == []
