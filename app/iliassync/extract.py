import json
import re
from typing import List, NamedTuple, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
import logging

from bs4 import BeautifulSoup, Tag

from .errors import PageStructureError
from .models import FileMetadataHint

logger = logging.getLogger(__name__)

NO_ENTRIES = "Keine Einträge"
SHOW_ALL_MARKER = "trows=800"
ZIP_BUNDLE_MARKER = "cmd=deliverZipFile"
MIN_MAIN_TEXT_LENGTH = 40
EXERCISE_DOWNLOAD_CMDS = ('downloadFile', 'downloadGlobalFeedbackFile', 'downloadFeedbackFile')

EXPAND_LINK_REGEX = re.compile(r'expand=\d')
IMAGE_SRC_REGEX = re.compile(r'\./data/produktiv/mobs/mm_(\d+)/([^?]+).+')
XOCT_REGEX = re.compile(r'<script>\s+xoctPaellaPlayer\.init\(([\s\S]+)\)\s+</script>', re.MULTILINE)


class ContainerItem(NamedTuple):
    """One entry of a course, folder or desktop listing"""
    href: Optional[str]
    text: str
    hint: Optional[FileMetadataHint]


class ThreadRow(NamedTuple):
    href: Optional[str]
    title: str
    post_count: int


class ForumPost(NamedTuple):
    id: str
    author: str
    title: str
    html: str
    images: List[str]
    attachments: List[Tuple[str, str]]

    @property
    def file_name(self) -> str:
        return f"{self.id}_{self.author}_{self.title}.html"


class VideoRow(NamedTuple):
    """A row of the video table; href is None for rows without a player link."""
    href: Optional[str]
    title: Optional[str]
    placeholder: bool = False


def _text(element: Tag) -> str:
    return element.get_text().strip()


def container_items(soup: BeautifulSoup) -> List[ContainerItem]:
    """
    Collect the listed items of a container page.

    Items without a title link are dropped. File entries carry their extension
    (first item property) and version (third item property).
    """
    items = []
    for item in soup.select('div.il_ContainerListItem'):
        link = item.select_one('a.il_ContainerItemTitle')
        if link is None:
            continue
        props = item.select('span.il_ItemProperty')
        hint = None
        if len(props) >= 3:
            hint = FileMetadataHint(extension=_text(props[0]), version=_text(props[2]))
        items.append(ContainerItem(link.get('href'), link.get_text(), hint))
    return items


def main_text(soup: BeautifulSoup) -> Optional[str]:
    """
    Custom text of a course or folder page, if it has any.

    Pages starting with the content overview block carry no custom text.
    """
    container = soup.select_one('#ilContentContainer')
    if container is None:
        return None
    first = next((child for child in container.children if isinstance(child, Tag)), None)
    if first is not None and 'ilContainerBlock' in ' '.join(first.get('class', [])):
        return None
    html = container.decode_contents()
    if len(html) <= MIN_MAIN_TEXT_LENGTH:
        return None
    return html


def expand_link(soup: BeautifulSoup) -> Optional[str]:
    """Link that expands the collapsed sessions of a folder."""
    for link in soup.find_all('a', href=True):
        if EXPAND_LINK_REGEX.search(link['href']):
            return link['href']
    return None


def show_all_link(soup: BeautifulSoup) -> Optional[str]:
    """Link to the unpaginated variant of a table (forum threads, video list)."""
    for link in soup.find_all('a', href=True):
        if SHOW_ALL_MARKER in link['href']:
            return link['href']
    return None


def forum_is_empty(soup: BeautifulSoup) -> bool:
    cell = soup.find('td')
    return cell is not None and any(s.strip() == NO_ENTRIES for s in cell.strings)


def forum_threads(soup: BeautifulSoup, url: str = "") -> List[ThreadRow]:
    """
    Parse the thread table of a forum.

    Raises:
        PageStructureError: If a thread row lacks its link or post count
    """
    threads = []
    for row in soup.find_all('tr'):
        if row.get('class') == ['hidden-print']:
            # thread count
            continue
        if row.find('th') is not None:
            continue
        cells = row.find_all('td')
        if len(cells) != 6:
            logger.warning(f"unusual table row ({len(cells)} cells) in {url}")
            continue
        link = cells[1].find('a')
        if link is None:
            raise PageStructureError(f"thread link not found in {url}")
        count = next(cells[3].stripped_strings, '')
        try:
            post_count = int(count)
        except ValueError:
            raise PageStructureError(f"parsing post count {count!r} failed in {url}")
        threads.append(ThreadRow(link.get('href'), _text(link), post_count))
    return threads


def forum_has_more_pages(soup: BeautifulSoup) -> bool:
    return bool(soup.select('div.ilTableNav > table > tbody > tr > td > a'))


def _post_author(post: Tag) -> str:
    small = post.select_one('span.small')
    if small is None:
        raise PageStructureError("post author not found")
    parts = _text(small).split('|')
    if len(parts) == 2:
        # pseudonymous forum
        author = parts[0]
    elif len(parts) == 3:
        author = parts[1] if parts[1] != 'Pseudonym' else parts[0]
    else:
        raise PageStructureError(f"author data in unknown format: {_text(small)!r}")
    return author.strip()


def thread_posts(soup: BeautifulSoup) -> List[ForumPost]:
    """
    Parse the posts of one thread page.

    Raises:
        PageStructureError: If a post lacks its title, author, content or id
    """
    posts = []
    for post in soup.select('.ilFrmPostRow'):
        title = post.select_one('.ilFrmPostTitle')
        if title is None:
            raise PageStructureError("post title not found")
        author = _post_author(post)
        container = post.select_one('.ilFrmPostContentContainer')
        if container is None:
            raise PageStructureError("post container not found")
        link = container.find('a')
        if link is None or not link.get('id'):
            raise PageStructureError("no id in thread link")

        images = []
        for image in container.find_all('img'):
            if not image.get('src'):
                raise PageStructureError("no src on image")
            images.append(image['src'])

        attachments = []
        attachment_box = container.select_one('.ilFrmPostAttachmentsContainer')
        if attachment_box is not None:
            for attachment in attachment_box.find_all('a'):
                href = attachment.get('href')
                if not href:
                    raise PageStructureError("attachment link without href")
                if ZIP_BUNDLE_MARKER in href:
                    # all attachments as one zip
                    continue
                attachments.append((attachment.get_text(), href))

        posts.append(ForumPost(link['id'], author, _text(title), container.decode_contents(),
                               images, attachments))
    return posts


def thread_next_page(soup: BeautifulSoup, url: str = "") -> Optional[str]:
    """Link to the next page of a thread, None on the last page."""
    table = soup.find('table')
    if table is None:
        return None
    links = table.select('tbody tr td a')
    if not links:
        logger.warning(f"unable to find pagination links in {url}")
        return None
    last = links[-1]
    if _text(last) != '>>':
        return None
    if not last.get('href'):
        raise PageStructureError("page link not found")
    return last['href']


def image_file_name(post_id: str, src: str) -> str:
    """Local name of an image embedded in a post."""
    match = IMAGE_SRC_REGEX.search(src)
    if match:
        # uploaded to the site
        media_id, name = match.groups()
        return f"{post_id}_{media_id}_{name}"
    return f"{post_id}_{src}"


def exercise_links(soup: BeautifulSoup) -> List[Tuple[str, Optional[str]]]:
    """(href, file name) of every linked row on an exercise page."""
    links = []
    for row in soup.select('.form-group'):
        link = row.find('a')
        if link is None or not link.get('href'):
            continue
        name = row.select_one('.il_InfoScreenProperty')
        links.append((link['href'], _text(name) if name is not None else None))
    return links


def rewrite_video_list_url(url: str) -> str:
    """Turn the full video list link into its asynchronous table variant."""
    parsed = urlparse(url)
    params = []
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        if key == 'cmd':
            value = 'asyncGetTableGUI'
        elif key == 'cmdClass':
            value = 'xocteventgui'
        params.append((key, value))
    params.append(('cmdMode', 'asynch'))
    return urlunparse(parsed._replace(query=urlencode(params)))


def video_rows(soup: BeautifulSoup) -> List[VideoRow]:
    rows = []
    for row in soup.select('.ilTableOuter > div > table > tbody > tr'):
        link = row.select_one('a[target="_blank"]')
        if link is None:
            placeholder = any(s.strip() == NO_ENTRIES for s in row.strings)
            rows.append(VideoRow(None, None, placeholder))
            continue
        cells = row.find_all('td')
        if len(cells) < 3:
            continue
        title = _text(cells[2])
        if title.startswith('<div'):
            continue
        if not link.get('href'):
            raise PageStructureError("video link without href")
        rows.append(VideoRow(link['href'], title))
    return rows


def player_streams(html: str) -> List[str]:
    """
    Stream URLs of an embedded video player.

    Raises:
        PageStructureError: If the player configuration is missing or malformed
    """
    match = XOCT_REGEX.search(html)
    if match is None:
        raise PageStructureError("xoct player json not found")
    # the first argument is the config object, further arguments follow on new lines
    config = match.group(1).split(",\n")[0].strip()
    try:
        data = json.loads(config)
    except json.JSONDecodeError as e:
        raise PageStructureError(f"invalid xoct player json: {e}")

    streams = data.get('streams') if isinstance(data, dict) else None
    if not isinstance(streams, list):
        raise PageStructureError("video streams not found")

    urls = []
    for stream in streams:
        try:
            src = stream['sources']['mp4'][0]['src']
        except (KeyError, IndexError, TypeError):
            raise PageStructureError("video src not found")
        if not isinstance(src, str):
            raise PageStructureError("video src not string")
        urls.append(src)
    return urls


def page_links(soup: BeautifulSoup) -> List[Tuple[str, str]]:
    """(href, text) of every link on a page"""
    return [(link['href'], _text(link)) for link in soup.find_all('a', href=True)]
