import html
import logging
import re
from html.parser import HTMLParser
from pathlib import Path
from typing import List

import mammoth
from pypdf import PdfReader

logger = logging.getLogger(__name__)

HTML_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>
      body {{
        font-family: {font_family}, sans-serif;
        font-size: {font_size}px;
        line-height: 1.6;
        color: #333;
        padding: 20px;
        max-width: 800px;
        margin: 0 auto;
      }}
      h1, h2, h3, h4, h5, h6 {{ color: #2c3e50; margin-top: 20px; margin-bottom: 10px; }}
      p {{ margin: 0 0 10px 0; text-align: justify; }}
      ul, ol {{ margin: 10px 0; padding-left: 30px; }}
      li {{ margin: 5px 0; }}
    </style>
  </head>
  <body>
{body}
  </body>
</html>
"""

HEADER_RE = re.compile(r"^(#{1,6})\s")
NUMBERED_RE = re.compile(r"^\d+\.\s")
BULLET_RE = re.compile(r"^[-*]\s")

BLOCK_TAGS = {"p", "div", "br", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "table", "section"}


def wrap_html(body: str, title: str = "Converted Document", font_family: str = "Arial", font_size: int = 12) -> str:
    return HTML_TEMPLATE.format(
        title=html.escape(title),
        font_family=font_family,
        font_size=font_size,
        body=body,
    )


def _list_block(lines: List[str], i: int, pattern: "re.Pattern[str]", tag: str) -> List[str]:
    text = pattern.sub("", lines[i], count=1).strip()
    out = []
    if i == 0 or not pattern.match(lines[i - 1]):
        out.append(f"<{tag}>")
    out.append(f"<li>{text}</li>")
    if i == len(lines) - 1 or not pattern.match(lines[i + 1]):
        out.append(f"</{tag}>")
    return out


def text_to_html_body(text: str) -> str:
    """Markdown-ish plain text to HTML: `#` headers, numbered and bullet lists, paragraphs."""
    lines = [line.strip() for line in html.escape(text, quote=True).split("\n")]
    out: List[str] = []
    for i, line in enumerate(lines):
        if not line:
            out.append("<br>")
            continue
        header = HEADER_RE.match(line)
        if header:
            level = min(len(header.group(1)), 6)
            out.append(f"<h{level}>{line[len(header.group(1)):].strip()}</h{level}>")
        elif NUMBERED_RE.match(line):
            out.extend(_list_block(lines, i, NUMBERED_RE, "ol"))
        elif BULLET_RE.match(line):
            out.extend(_list_block(lines, i, BULLET_RE, "ul"))
        else:
            out.append(f"<p>{line}</p>")
    return "\n".join(out)


class _TextExtractor(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []
        self._skip = 0

    def handle_starttag(self, tag, attrs):
        if tag in ("script", "style", "head"):
            self._skip += 1
        elif tag in BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag):
        if tag in ("script", "style", "head"):
            self._skip = max(0, self._skip - 1)
        elif tag in BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data):
        if not self._skip:
            self.parts.append(data)


def html_to_text(markup: str) -> str:
    """Strips tags, decodes entities and collapses whitespace."""
    parser = _TextExtractor()
    parser.feed(markup)
    parser.close()
    text = "".join(parser.parts).replace("\xa0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def docx_to_html(path: Path) -> str:
    with open(path, "rb") as f:
        result = mammoth.convert_to_html(f)
    for message in result.messages:
        logger.debug(f"MAMMOTH: {path.name}: {message}")
    return result.value


def docx_to_text(path: Path) -> str:
    with open(path, "rb") as f:
        result = mammoth.extract_raw_text(f)
    return result.value.strip()


def pdf_to_text(path: Path) -> str:
    """Extracts page text with pypdf. Raises ValueError for encrypted PDFs it cannot open."""
    reader = PdfReader(str(path))
    if reader.is_encrypted:
        try:
            decrypted = reader.decrypt("")
        except Exception as exc:
            raise ValueError(f"Encrypted PDF: {path.name}") from exc
        if not decrypted:
            raise ValueError(f"Encrypted PDF: {path.name}")
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(p for p in pages if p)
