import contextlib
import json
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar
from urllib.parse import urlparse
import logging

import httpx
from bs4 import BeautifulSoup
from h2.errors import ErrorCodes

from .errors import IliasError, SessionExpired
from .ratelimit import RequestRateLimiter
import settings

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_http2_no_error(error: BaseException) -> bool:
    """
    Check whether a transport error is an HTTP/2 stream reset with reason NO_ERROR.

    Some servers reset reused streams this way although nothing went wrong
    ("http2 error: protocol error: not a result of an error"). httpx wraps the
    httpcore error, which carries the h2 event with the reset reason.
    """
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if getattr(current, 'error_code', None) == ErrorCodes.NO_ERROR:
            return True
        for arg in current.args:
            if getattr(arg, 'error_code', None) == ErrorCodes.NO_ERROR:
                return True
        current = current.__cause__ or current.__context__
    return False


async def send_with_retry(send: Callable[[], Awaitable[T]], description: str = "request",
                          limit: Optional[int] = None) -> T:
    """
    Run one request attempt, retrying HTTP/2 NO_ERROR resets.

    Args:
        send: Performs a single attempt
        description: Used in the warning log line
        limit: Maximum number of retries (defaults to settings.HTTP2_RETRY_LIMIT)

    Returns:
        The result of the first successful attempt

    Raises:
        httpx.HTTPError: Any other failure, or the reset once the retries are used up
    """
    limit = settings.HTTP2_RETRY_LIMIT if limit is None else limit
    retries = 0
    while True:
        try:
            return await send()
        except httpx.TransportError as e:
            if retries < limit and is_http2_no_error(e):
                retries += 1
                logger.warning(f"encountered HTTP/2 NO_ERROR, retrying {description}..")
                continue
            raise


def load_session(path: Path) -> httpx.Cookies:
    """
    Load saved session cookies (one JSON object per line).

    Args:
        path: Session file

    Returns:
        Cookies (empty if the file does not exist)
    """
    cookies = httpx.Cookies()
    if not path.exists():
        return cookies

    for line in path.read_text(encoding='utf-8').splitlines():
        if not line.strip():
            continue
        cookie = json.loads(line)
        cookies.set(cookie['name'], cookie['value'],
                    domain=cookie.get('domain', ''), path=cookie.get('path', '/'))

    logger.info(f"Re-using previous session cookies from {path}")
    return cookies


class IliasClient:
    """
    Authenticated HTTP access to the site.

    Every GET and HEAD first takes a ticket from the shared rate limiter and is
    then sent through send_with_retry.
    """

    def __init__(self, rate_limiter: RequestRateLimiter, client: Optional[httpx.AsyncClient] = None,
                 base_url: Optional[str] = None, proxy: Optional[str] = None,
                 cookies: Optional[httpx.Cookies] = None):
        """
        Initialize the client.

        Args:
            rate_limiter: Shared request ticket accumulator
            client: Pre-configured httpx client (owned by the caller)
            base_url: Site base URL (defaults to settings.ILIAS_URL)
            proxy: Proxy URL, e.g. socks5://127.0.0.1:1080
            cookies: Session cookies
        """
        self.rate_limiter = rate_limiter
        self.base_url = base_url or settings.ILIAS_URL
        self._owns_client = client is None
        if client is None:
            # no timeout, large files take as long as they take
            client = httpx.AsyncClient(
                http2=True,
                follow_redirects=True,
                timeout=None,
                headers={'User-Agent': settings.USER_AGENT},
                proxy=proxy,
                cookies=cookies,
            )
        elif cookies is not None:
            client.cookies.update(cookies)
        self._client = client

    def resolve_url(self, url: str) -> str:
        if url.startswith(('http://', 'https://')):
            return url
        host = urlparse(self.base_url).netloc
        if url.startswith(host):
            return f"https://{url}"
        return self.base_url + url.lstrip('/')

    async def _send(self, method: str, url: str, stream: bool = False) -> httpx.Response:
        await self.rate_limiter.acquire()
        url = self.resolve_url(url)
        logger.debug(f"{method} {url}")
        request = self._client.build_request(method, url)
        description = "download" if method == 'GET' else f"{method} request"
        return await send_with_retry(lambda: self._client.send(request, stream=stream), description)

    async def download(self, url: str) -> httpx.Response:
        """GET with a streamed body; the caller must close the response."""
        return await self._send('GET', url, stream=True)

    @contextlib.asynccontextmanager
    async def stream(self, url: str) -> AsyncIterator[httpx.Response]:
        response = await self.download(url)
        try:
            yield response
        finally:
            await response.aclose()

    async def head(self, url: str) -> httpx.Response:
        return await self._send('HEAD', url)

    async def get_text(self, url: str) -> str:
        response = await self._send('GET', url)
        response.raise_for_status()
        return response.text

    async def get_html(self, url: str) -> BeautifulSoup:
        """
        Fetch a full page.

        Raises:
            SessionExpired: If the site redirected to its login
            IliasError: If the page shows an error alert
        """
        response = await self._send('GET', url)
        query = response.url.query.decode()
        if 'reloadpublic=1' in query or 'cmd=force_login' in query:
            raise SessionExpired(f"not logged in / session expired while loading {url}")
        response.raise_for_status()
        return self._parse(response.text, url)

    async def get_html_fragment(self, url: str) -> BeautifulSoup:
        """Fetch an asynchronously loaded page fragment."""
        return self._parse(await self.get_text(url), url)

    @staticmethod
    def _parse(text: str, url: str) -> BeautifulSoup:
        soup = BeautifulSoup(text, 'html.parser')
        if soup.select_one('div.alert-danger') is not None:
            raise IliasError(f"ILIAS error page at {url}")
        return soup

    def save_session(self, path: Path):
        """Write all cookies, including session cookies, one JSON object per line."""
        with open(path, 'w', encoding='utf-8') as f:
            for cookie in self._client.cookies.jar:
                f.write(json.dumps({
                    'name': cookie.name,
                    'value': cookie.value,
                    'domain': cookie.domain,
                    'path': cookie.path,
                }) + '\n')
        logger.debug(f"Saved session cookies to {path}")

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> 'IliasClient':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
