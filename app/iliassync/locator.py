from typing import Dict, Optional
from urllib.parse import urljoin, urlparse, parse_qsl

from .errors import InvalidLocator
from .models import Locator
import settings

# query parameter -> Locator field
RECOGNIZED_PARAMS: Dict[str, str] = {
    'baseClass': 'base_class',
    'cmdClass': 'cmd_class',
    'cmdNode': 'cmd_node',
    'cmd': 'cmd',
    'forwardCmd': 'forward_cmd',
    'thr_pk': 'thr_pk',
    'pos_pk': 'pos_pk',
    'ref_id': 'ref_id',
    'target': 'target',
    'file': 'file',
}


def resolve_href(href: str, base_url: Optional[str] = None) -> str:
    """
    Resolve a discovered link against the site base URL.

    Args:
        href: Absolute or site-relative link
        base_url: Site base URL (defaults to settings.ILIAS_URL)

    Returns:
        Absolute URL string

    Raises:
        InvalidLocator: If the result is not a valid absolute URL
    """
    base_url = base_url or settings.ILIAS_URL
    try:
        url = href if href.startswith(base_url) else urljoin(base_url, href)
        parsed = urlparse(url)
        # accessing the port validates it
        parsed.port
    except ValueError as e:
        raise InvalidLocator(href, str(e)) from e

    # mailto: and javascript: links have no netloc but are still absolute
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        raise InvalidLocator(href, "not an absolute URL")

    return url


def parse_locator(href: str, base_url: Optional[str] = None) -> Locator:
    """
    Parse a link into a Locator.

    Every query parameter is scanned once; recognized keys populate the matching
    field (last occurrence wins), everything else is dropped.

    Args:
        href: Absolute or site-relative link
        base_url: Site base URL (defaults to settings.ILIAS_URL)

    Returns:
        Locator for the resolved URL
    """
    url = resolve_href(href, base_url)

    fields = {}
    for key, value in parse_qsl(urlparse(url).query, keep_blank_values=True):
        field = RECOGNIZED_PARAMS.get(key)
        if field is not None:
            fields[field] = value

    return Locator(raw=url, **fields)


def raw_locator(url: str) -> Locator:
    """Locator for a directly addressed URL, without query parsing."""
    return Locator(raw=url)
