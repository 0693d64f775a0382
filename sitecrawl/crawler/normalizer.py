"""
URL canonicalisation used as the single dedup key of the crawl frontier.
"""

from typing import Optional
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from ..utils.config import ConfigError


# Query parameters that only carry attribution data
TRACKING_PARAMS = frozenset((
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'ref', 'fbclid', 'gclid',
))

DEFAULT_PORTS = {'http': 80, 'https': 443}


class InvalidSeedURLError(ConfigError):
    """Raised when the seed URL cannot bound a crawl."""
    pass


def _canonical_netloc(parsed) -> str:
    """Lower-case the host and drop the scheme's default port."""
    netloc = parsed.netloc.lower()
    port = parsed.port  # raises ValueError on a malformed port
    if port is not None and DEFAULT_PORTS.get(parsed.scheme.lower()) == port:
        netloc = netloc.rsplit(':', 1)[0]
    return netloc


def normalize_url(url: str) -> str:
    """
    Canonicalise a URL for frontier deduplication.

    Rules, in order:
    - strip trailing slashes from any path longer than "/"
    - remove tracking query parameters
    - sort the remaining query parameters by key
    - drop the fragment

    Never raises: anything that does not parse as an absolute URL is
    returned unchanged.
    """
    try:
        parsed = urlsplit(url)
        if not parsed.scheme or not parsed.netloc:
            return url

        scheme = parsed.scheme.lower()
        netloc = _canonical_netloc(parsed)

        path = parsed.path or '/'
        if len(path) > 1 and path.endswith('/'):
            path = path.rstrip('/') or '/'

        query = ''
        if parsed.query:
            params = [
                (key, value)
                for key, value in parse_qsl(parsed.query, keep_blank_values=True)
                if key not in TRACKING_PARAMS
            ]
            # sorted() is stable, repeated keys keep their relative order
            query = urlencode(sorted(params, key=lambda kv: kv[0]))

        return urlunsplit((scheme, netloc, path, query, ''))

    except ValueError:
        return url


def get_origin(url: str) -> Optional[str]:
    """Return scheme://host[:port] for a URL, or None if it has no host."""
    try:
        parsed = urlsplit(url)
        if not parsed.scheme or not parsed.netloc:
            return None
        return f"{parsed.scheme.lower()}://{_canonical_netloc(parsed)}"
    except ValueError:
        return None


def is_same_origin(url: str, origin: str) -> bool:
    """Check whether a URL belongs to the given origin."""
    return get_origin(url) == origin


def validate_seed_url(url: Optional[str]) -> str:
    """
    Validate the crawl seed and return its normalized form.

    Raises:
        InvalidSeedURLError: if the URL is not an absolute http(s) URL
    """
    if not url:
        raise InvalidSeedURLError("A base URL is required")

    candidate = url.strip()
    origin = get_origin(candidate)

    if origin is None or origin.split('://', 1)[0] not in ('http', 'https') \
            or not urlsplit(candidate).hostname:
        raise InvalidSeedURLError(
            f"Invalid base URL {url!r}: expected an absolute http or https URL"
        )

    return normalize_url(candidate)
