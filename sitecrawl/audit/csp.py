"""
Content Security Policy audits built on the crawl hooks.

CspValidationHooks reports violations and pages served without a policy.
CspPolicyBuilder records which third-party origins a site loads and turns
them into a starting policy.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from ..crawler.hooks import CrawlHooks, RequestDecision
from ..crawler.normalizer import get_origin


CSP_HEADER = 'content-security-policy'
CSP_REPORT_ONLY_HEADER = 'content-security-policy-report-only'

# Playwright resource type -> CSP fetch directive
RESOURCE_DIRECTIVES = {
    'script': 'script-src',
    'stylesheet': 'style-src',
    'image': 'img-src',
    'font': 'font-src',
    'xhr': 'connect-src',
    'fetch': 'connect-src',
    'eventsource': 'connect-src',
    'websocket': 'connect-src',
    'media': 'media-src',
    'manifest': 'manifest-src',
}

DIRECTIVE_ORDER = (
    'script-src', 'style-src', 'img-src', 'font-src', 'connect-src',
    'frame-src', 'media-src', 'manifest-src',
)

INLINE_CHECK_SCRIPT = """() => {
    const scripts = Array.from(document.querySelectorAll('script:not([src])'));
    const styles = document.querySelectorAll('style');
    const styleAttrs = document.querySelectorAll('[style]');
    const handlers = document.querySelectorAll(
        '[onclick], [onload], [onerror], [onmouseover], [onsubmit], [onchange], [onfocus], [onblur]'
    );
    return {
        hasInlineScripts: scripts.some(s => s.textContent.trim().length > 0) || handlers.length > 0,
        hasInlineStyles: styles.length > 0 || styleAttrs.length > 0,
    };
}"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def is_csp_violation(text: str) -> bool:
    return '[Report Only]' in text or 'Content Security Policy' in text


class CspValidationHooks(CrawlHooks):
    """Collects CSP console violations and documents missing a CSP header."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.violations: List[Dict[str, str]] = []
        self.pages_without_csp: List[str] = []
        self._seen_without_csp: Set[str] = set()

    def on_console_message(self, message: Any, page_url: str) -> None:
        text = message.text
        if not is_csp_violation(text):
            return

        self.violations.append({
            'url': page_url or 'unknown',
            'timestamp': _utc_now(),
            'violation': text,
            'type': 'console',
        })
        self.logger.warning(f"CSP violation on {page_url}: {text}")

    async def on_page_visit(self, page: Any, url: str, depth: int,
                            response: Optional[Any]) -> None:
        if response is None:
            return

        headers = {name.lower(): value for name, value in response.headers.items()}
        if CSP_HEADER in headers or CSP_REPORT_ONLY_HEADER in headers:
            return

        if url not in self._seen_without_csp:
            self._seen_without_csp.add(url)
            self.pages_without_csp.append(url)
            self.logger.warning(f"No CSP header on document: {url}")

    def unique_violations(self) -> List[str]:
        return sorted({violation['violation'] for violation in self.violations})

    def report(self) -> Dict[str, Any]:
        return {
            'pagesWithoutCsp': list(self.pages_without_csp),
            'totalViolations': len(self.violations),
            'violations': list(self.violations),
            'uniqueViolations': self.unique_violations(),
        }


class CspPolicyBuilder(CrawlHooks):
    """
    Records third-party origins per CSP directive and inline code usage.

    Cross-origin sub-resources are let through (and reported as handled) so
    that resources they load in turn are observed as well.
    """

    def __init__(self, base_origin: str):
        self.base_origin = base_origin
        self.logger = logging.getLogger(__name__)
        self.external_origins: Dict[str, Set[str]] = {
            directive: set() for directive in DIRECTIVE_ORDER
        }
        self.has_inline_scripts = False
        self.has_inline_styles = False

    def directive_for(self, request: Any) -> Optional[str]:
        resource_type = request.resource_type
        if resource_type == 'document':
            # Only frames issue non-main-frame document requests
            frame = request.frame
            if frame is not None and frame.parent_frame is not None:
                return 'frame-src'
            return None
        return RESOURCE_DIRECTIVES.get(resource_type)

    async def on_request_intercept(self, route: Any) -> RequestDecision:
        request = route.request
        origin = get_origin(request.url)

        if origin is None or origin == self.base_origin or not origin.startswith('http'):
            return RequestDecision.PASS_THROUGH

        directive = self.directive_for(request)
        if directive is None:
            return RequestDecision.PASS_THROUGH

        self.external_origins[directive].add(origin)
        await route.continue_()
        return RequestDecision.HANDLED

    async def on_page_visit(self, page: Any, url: str, depth: int,
                            response: Optional[Any]) -> None:
        inline = await page.evaluate(INLINE_CHECK_SCRIPT)
        if inline.get('hasInlineScripts'):
            self.has_inline_scripts = True
        if inline.get('hasInlineStyles'):
            self.has_inline_styles = True

    def build_policy(self) -> Dict[str, List[str]]:
        """Directive -> source list, in a stable order."""
        policy: Dict[str, List[str]] = {}

        for directive in DIRECTIVE_ORDER:
            origins = sorted(self.external_origins[directive])
            if origins or directive in ('script-src', 'style-src'):
                policy[directive] = ["'self'", *origins]

        if self.has_inline_scripts:
            policy['script-src'].append("'unsafe-inline'")
        if self.has_inline_styles:
            policy['style-src'].append("'unsafe-inline'")

        policy['default-src'] = ["'self'"]
        policy['base-uri'] = ["'self'"]

        img_sources = policy.setdefault('img-src', ["'self'"])
        if 'data:' not in img_sources:
            img_sources.append('data:')

        return policy

    @staticmethod
    def header_value(policy: Dict[str, List[str]]) -> str:
        return '; '.join(f"{directive} {' '.join(sources)}" for directive, sources in policy.items())

    def report(self) -> Dict[str, Any]:
        policy = self.build_policy()
        return {
            'hasInlineScripts': self.has_inline_scripts,
            'hasInlineStyles': self.has_inline_styles,
            'policy': policy,
            'header': self.header_value(policy),
        }
