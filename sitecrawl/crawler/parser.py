"""
Anchor link extraction from a rendered document.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlsplit, urldefrag
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, SoupStrainer

from .normalizer import get_origin


# Only anchors and <base> matter for link discovery
LINK_STRAINER = SoupStrainer(["a", "base"])

IMAGE_PATTERN = re.compile(r'\.(?:jpe?g|png|gif|webp|svg|ico|bmp|tiff?|avif)(?:\?|$)', re.IGNORECASE)


@dataclass
class ExtractedLinks:
    """Links kept from one page."""
    page_url: str
    links: List[str] = field(default_factory=list)
    total_found: int = 0
    truncated: bool = False


class LinkExtractor:
    """
    Collects same-origin page links from rendered HTML.

    Hrefs resolve against the document's <base href> when present, else the
    final page URL. Kept links are http(s), fragment-free, same-origin, not
    PDFs or images, unique in document order, and capped per page.
    """

    def __init__(self, base_origin: str, max_links_per_page: int):
        self.base_origin = base_origin
        self.max_links_per_page = max_links_per_page
        self.logger = logging.getLogger(__name__)

    def extract(self, html: str, page_url: str) -> ExtractedLinks:
        soup = BeautifulSoup(html or "", 'lxml', parse_only=LINK_STRAINER)
        base_uri = self._document_base(soup, page_url)

        seen = set()
        links = []
        for anchor in soup.find_all('a', href=True):
            link = self._resolve(anchor.get('href') or '', base_uri)
            if link is None or link in seen:
                continue
            seen.add(link)
            links.append(link)

        result = ExtractedLinks(page_url=page_url, total_found=len(links))
        if len(links) > self.max_links_per_page:
            result.truncated = True
            links = links[:self.max_links_per_page]
        result.links = links

        self.logger.debug(f"Extracted {len(links)} links from {page_url}"
                          f"{' (truncated)' if result.truncated else ''}")
        return result

    def _document_base(self, soup: BeautifulSoup, page_url: str) -> str:
        base_tag = soup.find('base', href=True)
        if base_tag is None:
            return page_url
        try:
            return urljoin(page_url, base_tag['href'].strip())
        except ValueError:
            return page_url

    def _resolve(self, raw_href: str, base_uri: str) -> Optional[str]:
        """Absolute, fragment-free link if it passes every filter, else None."""
        try:
            absolute = urljoin(base_uri, raw_href.strip())
            scheme = urlsplit(absolute).scheme.lower()
        except ValueError:
            return None

        if scheme not in ('http', 'https'):
            return None

        link, _ = urldefrag(absolute)
        if get_origin(link) != self.base_origin:
            return None

        if not self._is_page_link(link):
            return None

        return link

    def _is_page_link(self, link: str) -> bool:
        """Exclude documents and schemes that are never crawlable pages."""
        if '.pdf' in link.lower():
            return False
        if IMAGE_PATTERN.search(link):
            return False
        if 'tel:' in link or 'mailto:' in link:
            return False
        return True
