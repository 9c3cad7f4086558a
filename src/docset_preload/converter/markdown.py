"""HTML to Markdown conversion."""

import logging
import re

from bs4 import BeautifulSoup, Tag
from markdownify import ATX
from markdownify import MarkdownConverter as BaseMarkdownConverter

logger = logging.getLogger(__name__)


class MarkdownConverter(BaseMarkdownConverter):
    """Markdown converter for documentation pages.

    Fenced code blocks and ATX headings always; GitHub-flavored tables and
    strikethrough only when ``gfm`` is enabled.
    """

    def __init__(self, gfm: bool = True, **kwargs):
        self.gfm = gfm
        super().__init__(
            heading_style=ATX,
            bullets="-",
            strong_em_symbol="*",
            **kwargs,
        )

    def convert_a(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        """Drop anchors without visible text; flatten headings inside links."""
        if not el.get_text(strip=True):
            return ""
        href = el.get("href", "")
        heading = el.find(re.compile(r"^h[1-6]$"))
        if heading:
            title_text = heading.get_text(strip=True)
            desc_parts = []
            for child in el.children:
                if child == heading:
                    continue
                if hasattr(child, "get_text"):
                    t = child.get_text(strip=True)
                    if t:
                        desc_parts.append(t)
                elif isinstance(child, str) and child.strip():
                    desc_parts.append(child.strip())
            desc = " ".join(desc_parts)
            if desc:
                return f"\n- **[{title_text}]({href})** - {desc}\n"
            return f"\n- **[{title_text}]({href})**\n"
        return super().convert_a(el, text, parent_tags=parent_tags, **kwargs)  # type: ignore[misc,no-any-return]

    def convert_pre(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        """Emit fenced code blocks with the language taken from class names."""
        code = el.find("code")
        source = code if isinstance(code, Tag) else el
        lang = self._extract_language(source) or self._extract_language(el)
        code_text = source.get_text()
        if not code_text.startswith("\n"):
            code_text = "\n" + code_text
        if not code_text.endswith("\n"):
            code_text = code_text + "\n"
        return f"\n```{lang}{code_text}```\n\n"

    def convert_code(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        """Handle inline code."""
        if el.parent and el.parent.name == "pre":
            return text
        code_text = el.get_text()
        if not code_text:
            return ""
        if "`" in code_text:
            return f"`` {code_text} ``"
        return f"`{code_text}`"

    def convert_del(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        if not text.strip():
            return ""
        return f"~~{text}~~" if self.gfm else text

    convert_s = convert_del
    convert_strike = convert_del

    def convert_table(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        """Pipe tables under GFM, one line per row otherwise."""
        rows = [tr for tr in el.find_all("tr") if tr.find_parent("table") is el]
        if not rows:
            return ""

        if not self.gfm:
            lines = [
                " ".join(self._cell_text(cell) for cell in tr.find_all(["th", "td"]))
                for tr in rows
            ]
            return "\n\n" + "\n".join(line for line in lines if line) + "\n\n"

        header_row = rows[0] if rows[0].find("th") or el.find("thead") else None
        lines = []
        if header_row is not None:
            headers = [self._cell_text(cell) for cell in header_row.find_all(["th", "td"])]
        else:
            width = max(len(tr.find_all(["th", "td"])) for tr in rows)
            headers = [""] * width
        lines.append("| " + " | ".join(headers) + " |")
        lines.append("| " + " | ".join(["---"] * len(headers)) + " |")

        for tr in rows:
            if tr is header_row:
                continue
            cells = [self._cell_text(cell) for cell in tr.find_all(["th", "td"])]
            if cells:
                lines.append("| " + " | ".join(cells) + " |")

        return "\n\n" + "\n".join(lines) + "\n\n"

    def convert_img(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        src = el.get("src", "") or ""
        alt = el.get("alt", "") or ""
        if isinstance(src, list):
            src = src[0] if src else ""
        if isinstance(alt, list):
            alt = " ".join(alt)
        if not src:
            return ""
        if len(alt) > 100:
            alt = alt[:97] + "..."
        return f"![{alt}]({src})"

    def convert_svg(self, el: Tag, text: str, parent_tags=None, **kwargs) -> str:
        """Suppress inline SVG icons."""
        return ""

    @staticmethod
    def _cell_text(cell: Tag) -> str:
        text = cell.get_text(separator=" ", strip=True)
        return text.replace("\n", " ").replace("|", "\\|")

    @staticmethod
    def _extract_language(elem: Tag) -> str:
        """Extract programming language from class names."""
        raw_classes: str | list[str] = elem.get("class") or []
        classes: list[str] = (
            raw_classes.split() if isinstance(raw_classes, str) else list(raw_classes)
        )
        for cls in classes:
            if cls.startswith("language-"):
                return cls[9:]
            if cls.startswith("lang-"):
                return cls[5:]
            if cls.startswith("highlight-"):
                return cls[10:]
        return ""


def _convert(html: str, gfm: bool) -> str:
    soup = BeautifulSoup(f"<div>{html}</div>", "lxml")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    markdown = MarkdownConverter(gfm=gfm).convert_soup(soup)
    markdown = re.sub(r"\n{3,}", "\n\n", markdown)
    return markdown.strip()


def html_to_markdown(html: str) -> str:
    """Convert HTML to Markdown.

    Retries once without GFM extensions if conversion fails; returns an empty
    string when both attempts fail.
    """
    cleaned = html.replace("\u00a0", " ").strip() if html else ""
    if not cleaned:
        return ""

    try:
        return _convert(cleaned, gfm=True)
    except Exception:
        logger.debug("GFM conversion failed, retrying without extensions", exc_info=True)

    try:
        return _convert(cleaned, gfm=False)
    except Exception:
        logger.warning("Markdown conversion failed", exc_info=True)
        return ""
