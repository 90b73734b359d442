"""
Heuristic article-body selection over a rendered HTML snapshot.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Optional, Tuple

import soupsieve
import structlog
from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

from newsharvest.config.config import ExtractionRules
from newsharvest.models import ContentCandidate, RenderedDocument

from .cleaner import normalize_whitespace

logger = structlog.get_logger(__name__)

# Attributes stamped on every element by browser.snapshot.
WIDTH_ATTR = "data-nh-width"
HEIGHT_ATTR = "data-nh-height"

BLOCK_TAGS = frozenset(
    {
        "address",
        "article",
        "aside",
        "blockquote",
        "dd",
        "details",
        "div",
        "dl",
        "dt",
        "fieldset",
        "figcaption",
        "figure",
        "footer",
        "form",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hr",
        "li",
        "main",
        "nav",
        "ol",
        "p",
        "pre",
        "section",
        "summary",
        "table",
        "td",
        "th",
        "tr",
        "ul",
    }
)
_PROTECTED_TAGS = frozenset({"html", "body"})
_INVISIBLE_TAGS = frozenset({"script", "style", "template", "noscript"})


def render_text(node: Tag) -> str:
    """Approximate ``innerText``: block elements and <br> break lines, inline elements do not."""
    parts: List[str] = []
    _collect_text(node, parts)
    return normalize_whitespace("".join(parts)).strip()


def _collect_text(node: Tag, parts: List[str]) -> None:
    for child in node.children:
        if isinstance(child, PreformattedString):
            # Comments, CDATA, doctype and processing instructions carry no visible text.
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif isinstance(child, Tag):
            if child.name in _INVISIBLE_TAGS:
                continue
            if child.name == "br":
                parts.append("\n")
            elif child.name in BLOCK_TAGS:
                parts.append("\n")
                _collect_text(child, parts)
                parts.append("\n")
            else:
                _collect_text(child, parts)


def element_area(element: Tag) -> float:
    """Rendered width x height recorded on the element, 0 when unknown."""
    try:
        width = float(element.get(WIDTH_ATTR, 0) or 0)
        height = float(element.get(HEIGHT_ATTR, 0) or 0)
    except (TypeError, ValueError):
        return 0.0
    if width <= 0 or height <= 0:
        return 0.0
    return width * height


def element_depth(element: Tag) -> int:
    """Number of element ancestors (the <html> element has depth 0)."""
    return sum(1 for parent in element.parents if isinstance(parent, Tag) and parent.name != "[document]")


class ContentSelector:
    """
    Picks the DOM subtree most likely to hold the article body.

    Noise elements are removed from a parsed working copy, then the configured
    selectors are probed in order and the first block with enough text wins.
    If none qualifies, every remaining block under <body> with enough text is
    ranked by rendered area (largest first) and DOM depth (shallowest first).
    """

    parser = "html.parser"

    def __init__(self, rules: ExtractionRules | None = None) -> None:
        self.rules = rules or ExtractionRules()
        self.logger = logger.bind(component="ContentSelector")
        self._noise = self._compile_all(self.rules.noise_selectors)
        self._content = self._compile_all(self.rules.content_selectors)

    def _compile_all(self, selectors: List[str]) -> List[Tuple[str, Any]]:
        compiled = []
        for selector in selectors:
            try:
                compiled.append((selector, soupsieve.compile(selector)))
            except (soupsieve.SelectorSyntaxError, NotImplementedError) as e:
                self.logger.warning("Invalid selector skipped", selector=selector, error=str(e))
        return compiled

    def select(self, document: RenderedDocument) -> Optional[ContentCandidate]:
        if not document.html or not document.html.strip():
            return None

        soup = BeautifulSoup(document.html, self.parser)
        removed = self._remove_noise(soup)

        candidate = self._probe_selectors(soup)
        if candidate is not None:
            self.logger.debug(
                "Content block selected by selector",
                url=document.url,
                selector=candidate.origin_selector,
                length=len(candidate.text),
                noise_removed=removed,
            )
            return candidate

        candidate = self._statistical_fallback(soup)
        if candidate is None:
            self.logger.info("No qualifying content block", url=document.url, noise_removed=removed)
        else:
            self.logger.debug(
                "Content block selected by area",
                url=document.url,
                area=candidate.area,
                depth=candidate.depth,
                length=len(candidate.text),
            )
        return candidate

    def body_text(self, document: RenderedDocument) -> str:
        """Visible text of the whole <body>, with nothing removed."""
        if not document.html:
            return ""
        soup = BeautifulSoup(document.html, self.parser)
        return render_text(soup.body or soup)

    def _remove_noise(self, soup: BeautifulSoup) -> int:
        doomed: List[Tag] = []
        for _selector, pattern in self._noise:
            doomed.extend(pattern.select(soup))

        removed = 0
        for element in doomed:
            if element.decomposed or element.name in _PROTECTED_TAGS:
                continue
            element.decompose()
            removed += 1
        return removed

    def _qualifies(self, text: str) -> bool:
        return len(text) > self.rules.min_block_length

    def _probe_selectors(self, soup: BeautifulSoup) -> Optional[ContentCandidate]:
        for selector, pattern in self._content:
            for element in pattern.select(soup):
                text = render_text(element)
                if self._qualifies(text):
                    return ContentCandidate(
                        text=text,
                        origin_selector=selector,
                        area=element_area(element),
                        depth=element_depth(element),
                    )
        return None

    def _iter_blocks(self, soup: BeautifulSoup) -> Iterator[Tuple[int, Tag]]:
        root = soup.body or soup
        yield from enumerate(root.find_all(True))

    def _statistical_fallback(self, soup: BeautifulSoup) -> Optional[ContentCandidate]:
        best: Optional[Tuple[Tuple[float, int, int], ContentCandidate]] = None
        for position, element in self._iter_blocks(soup):
            text = render_text(element)
            if not self._qualifies(text):
                continue
            candidate = ContentCandidate(
                text=text,
                origin_selector=None,
                area=element_area(element),
                depth=element_depth(element),
            )
            rank = (-candidate.area, candidate.depth, position)
            if best is None or rank < best[0]:
                best = (rank, candidate)
        return best[1] if best else None
