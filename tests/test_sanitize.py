import pytest

from reader.sanitize import HtmlSanitizer


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("", ""),
        ("plain text", "plain text"),
        ("<p>a &amp; b &#169;</p>", "<p>a &amp; b &#169;</p>"),
        ("<p>x</p><script>alert(1)</script>", "<p>x</p>"),
        ("<style>p{}</style><iframe src='x'>inner</iframe>ok", "ok"),
        ('<p onclick="evil()" class="h-entry">x</p>', '<p class="h-entry">x</p>'),
        ('<a href="javascript:alert(1)">x</a>', "<a>x</a>"),
        ('<a href="java&#9;script:alert(1)">x</a>', "<a>x</a>"),
        ('<a href="java&#10;script:alert(1)">x</a>', "<a>x</a>"),
        ('<a href="jav&#x09;ascript:alert(1)">x</a>', "<a>x</a>"),
        ('<a href=" JaVaScRiPt:alert(1)">x</a>', "<a>x</a>"),
        ('<a href="&#1;javascript:alert(1)">x</a>', "<a>x</a>"),
        ('<a href="vbscript:msgbox(1)">x</a>', "<a>x</a>"),
        ('<a href="file:///etc/passwd">x</a>', "<a>x</a>"),
        ('<a href="/tags/python">x</a>', '<a href="/tags/python">x</a>'),
        ('<a href="mailto:alice@example.org">x</a>', '<a href="mailto:alice@example.org">x</a>'),
        ('<a href="ipns://example.org/@alice">x</a>', '<a href="ipns://example.org/@alice">x</a>'),
        ('<a href="https://e.x/?a=1&amp;b=2" target="_blank">x</a>', '<a href="https://e.x/?a=1&amp;b=2">x</a>'),
        ('<img src="data:text/html,evil"><img src="data:image/png;base64,AA">', '<img><img src="data:image/png;base64,AA">'),
        ("<marquee>moving</marquee>", "moving"),
        ("<video controls><source src='v.mp4'></video>", '<video controls><source src="v.mp4"></video>'),
        ("line<br/>break<!-- note -->", "line<br />break"),
    ],
)
def test_sanitize(raw, expected):
    assert HtmlSanitizer().sanitize(raw) == expected
