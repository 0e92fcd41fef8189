"""Post-processing for Markdown produced by markdownify."""

import re

_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")
# Cloudflare email obfuscation placeholders, e.g. "[email protected]"
_EMAIL_PROTECTED_RE = re.compile(r"\[email(?:\s|&#160;)protected\]", re.IGNORECASE)


def clean_markdown(text: str) -> str:
    """Tidy whitespace and drop obfuscation placeholders from *text*."""
    text = _EMAIL_PROTECTED_RE.sub("", text)
    text = text.replace("\u00a0", " ")
    text = _TRAILING_WS_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()
