"""Tests for link extraction."""

from sitecrawl.crawler.parser import LinkExtractor

from conftest import anchors


ORIGIN = "https://x.test"
PAGE = "https://x.test/docs/index"


def extract(html, page_url=PAGE, cap=1000):
    return LinkExtractor(ORIGIN, cap).extract(html, page_url)


class TestLinkExtractor:
    """Tests for link filtering and resolution."""

    def test_resolves_relative_links_against_page(self):
        result = extract(anchors("guide", "/about", "../contact"))
        assert result.links == [
            "https://x.test/docs/guide",
            "https://x.test/about",
            "https://x.test/contact",
        ]

    def test_base_href_overrides_page_url(self):
        html = '<html><head><base href="https://x.test/v2/"></head><body><a href="intro">i</a></body></html>'
        assert extract(html).links == ["https://x.test/v2/intro"]

    def test_cross_origin_links_dropped(self):
        result = extract(anchors("https://other.test/b", "http://x.test/insecure", "https://sub.x.test/"))
        assert result.links == []
        assert result.total_found == 0

    def test_non_http_schemes_dropped(self):
        result = extract(anchors("mailto:hi@x.test", "tel:+123", "javascript:void(0)", "ftp://x.test/f"))
        assert result.links == []

    def test_fragment_stripped_and_deduplicated(self):
        result = extract(anchors("/a#one", "/a#two", "/a", "#top"))
        assert result.links == ["https://x.test/a", "https://x.test/docs/index"]

    def test_documents_and_images_excluded(self):
        result = extract(anchors(
            "/files/report.pdf",
            "/files/REPORT.PDF?download=1",
            "/img/logo.png",
            "/img/photo.JPG",
            "/img/icon.svg?v=2",
            "/pictures",
        ))
        assert result.links == ["https://x.test/pictures"]

    def test_tel_and_mailto_inside_path_excluded(self):
        result = extract(anchors("/redirect?to=mailto:x", "/call/tel:123"))
        assert result.links == []

    def test_truncation(self):
        result = extract(anchors(*[f"/p{i}" for i in range(5)]), cap=3)
        assert result.links == ["https://x.test/p0", "https://x.test/p1", "https://x.test/p2"]
        assert result.truncated
        assert result.total_found == 5

    def test_no_truncation_at_cap(self):
        result = extract(anchors("/a", "/b"), cap=2)
        assert not result.truncated
        assert len(result.links) == 2

    def test_anchors_without_href_ignored(self):
        result = extract('<a name="top">t</a><a href="/x">x</a>')
        assert result.links == ["https://x.test/x"]

    def test_empty_document(self):
        result = extract("")
        assert result.links == []
        assert result.page_url == PAGE
