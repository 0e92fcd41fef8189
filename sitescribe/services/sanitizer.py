import re

from bs4 import BeautifulSoup, Comment, Tag

# Matches `display:none` or `visibility:hidden` in inline style attributes
_HIDDEN_STYLE_RE = re.compile(
    r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE
)

# Tags whose entire subtree is removed before extraction
_REMOVE_TAGS = {
    "script",
    "style",
    "iframe",
    "noscript",
}

# HTML attributes that contain CSS or JavaScript
_JUNK_ATTRS = re.compile(r"^(style|on\w+)$", re.IGNORECASE)


def sanitize(html: str) -> BeautifulSoup:
    """Parse *html* and strip scripting, styling, and hidden elements.

    Navigation, headers, and footers are kept: the extractor needs their
    anchors for link discovery, and main-content selection happens later.
    """
    soup = BeautifulSoup(html, "lxml")

    for tag in soup.find_all(_REMOVE_TAGS):
        tag.decompose()

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        if not isinstance(tag, Tag) or tag.decomposed:
            continue
        inline_style = tag.get("style", "")
        if inline_style and _HIDDEN_STYLE_RE.search(inline_style):
            tag.decompose()
            continue
        junk = [attr for attr in tag.attrs if _JUNK_ATTRS.match(attr)]
        for attr in junk:
            del tag[attr]

    return soup
