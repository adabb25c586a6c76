from pathlib import Path
from typing import Dict, Optional, Set
from urllib.parse import urljoin
import logging

import httpx

from .classify import resource_from_link
from .errors import InvalidLocator, PageStructureError, SyncError
from .extract import (
    EXERCISE_DOWNLOAD_CMDS,
    container_items,
    exercise_links,
    expand_link,
    forum_has_more_pages,
    forum_is_empty,
    forum_threads,
    image_file_name,
    main_text,
    page_links,
    player_streams,
    rewrite_video_list_url,
    show_all_link,
    thread_next_page,
    thread_posts,
    video_rows,
)
from .fetch import IliasClient, load_session
from .locator import parse_locator, raw_locator, resolve_href
from .models import Resource, ResourceKind, SyncOptions
from .ratelimit import RequestRateLimiter
from .scheduler import Scheduler, SyncUnit
from .scope import IgnoreRules
from .storage import (
    count_entries,
    create_dir,
    file_escape,
    unique_file_name,
    wrap_html,
    write_file_data,
    write_stream_to_file,
)
import settings

logger = logging.getLogger(__name__)

VIDEO_LIST_PATH = (
    "ilias.php?ref_id={ref_id}&cmdClass=xocteventgui&cmdNode=nc:n4:14u"
    "&baseClass=ilObjPluginDispatchGUI&lang=de&limit=20&cmd=asyncGetTableGUI&cmdMode=asynch"
)

PAGE_FILE_NAMES = {
    ResourceKind.COURSE: 'course.html',
    ResourceKind.FOLDER: 'folder.html',
}

# kind -> SiteSyncer method
HANDLERS: Dict[ResourceKind, str] = {
    ResourceKind.COURSE: 'sync_container',
    ResourceKind.FOLDER: 'sync_folder',
    ResourceKind.PERSONAL_DESKTOP: 'sync_container',
    ResourceKind.FILE: 'sync_file',
    ResourceKind.FORUM: 'sync_forum',
    ResourceKind.THREAD: 'sync_thread',
    ResourceKind.WIKI: 'skip',
    ResourceKind.EXERCISE_HANDLER: 'sync_exercise',
    ResourceKind.WEBLINK: 'sync_weblink',
    ResourceKind.SURVEY: 'skip',
    ResourceKind.PRESENTATION: 'skip',
    ResourceKind.PLUGIN_DISPATCH: 'sync_video_list',
    ResourceKind.VIDEO: 'sync_video',
    ResourceKind.GENERIC: 'skip',
}

_unhandled = set(ResourceKind) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"no handler for resource kinds {sorted(k.value for k in _unhandled)}")


class SiteSyncer:
    """
    Crawl context shared by all units of one run.

    Holds the options, the ignore rules, the HTTP client and the scheduler, and
    processes single units: the ignore check, then one handler per resource kind.
    """

    def __init__(self, options: SyncOptions, client: IliasClient, ignore: Optional[IgnoreRules] = None):
        """
        Initialize the crawl context.

        Args:
            options: Run configuration
            client: Authenticated HTTP client (shares the rate limiter)
            ignore: Ignore rules of the sync target
        """
        self.options = options
        self.client = client
        self.ignore = ignore or IgnoreRules()
        self.scheduler = Scheduler(options.jobs, self.process)
        self.ignored = 0
        self._handlers = {kind: getattr(self, name) for kind, name in HANDLERS.items()}

    @property
    def base_url(self) -> str:
        return self.client.base_url

    def relative(self, path: Path) -> Path:
        return path.relative_to(self.options.output)

    def submit(self, resource: Resource, path: Path):
        self.scheduler.submit(resource, path)

    async def process(self, unit: SyncUnit):
        resource, path = unit
        relative = self.relative(path)
        if self.ignore.should_ignore(relative, resource.is_container):
            self.ignored += 1
            logger.info(f"Ignored {relative}")
            return

        logger.info(f"Syncing {resource.kind.value} {relative}")
        logger.debug(f"URL: {resource.locator.raw}")
        await self._handlers[resource.kind](resource, path, relative)

    async def skip(self, resource: Resource, path: Path, relative: Path):
        logger.debug(f"Not descending into {resource.kind.value} {relative}")

    def _submit_items(self, soup, path: Path, warn_duplicates: bool = False):
        names: Set[str] = set()
        for item in container_items(soup):
            try:
                child = resource_from_link(item.href, item.text, item.hint, self.base_url)
            except SyncError as e:
                logger.warning(f"Skipping entry {item.text.strip()!r} in {self.relative(path)}: {e}")
                continue
            if child.kind == ResourceKind.PERSONAL_DESKTOP:
                logger.debug(f"Not following desktop link in {self.relative(path)}")
                continue

            name = file_escape(child.name)
            if warn_duplicates and name in names:
                logger.warning(f"folder {self.relative(path)} contains duplicated folder {name!r}")
            names.add(name)
            self.submit(child, path / name)

    def _save_page(self, soup, resource: Resource, path: Path):
        file_name = PAGE_FILE_NAMES.get(resource.kind)
        if not self.options.save_ilias_pages or file_name is None:
            return
        text = main_text(soup)
        if text is not None:
            write_file_data(path / file_name, text)

    async def sync_container(self, resource: Resource, path: Path, relative: Path):
        create_dir(path)
        soup = await self.client.get_html(resource.locator.raw)
        self._save_page(soup, resource, path)
        self._submit_items(soup, path)

    async def sync_folder(self, resource: Resource, path: Path, relative: Path):
        create_dir(path)
        soup = await self.client.get_html(resource.locator.raw)

        # expand all sessions
        seen = set()
        expand = expand_link(soup)
        while expand is not None and expand not in seen:
            seen.add(expand)
            logger.debug(f"Expanding sessions of {relative}")
            soup = await self.client.get_html(expand)
            expand = expand_link(soup)

        self._save_page(soup, resource, path)
        self._submit_items(soup, path, warn_duplicates=True)

    async def _download_to(self, path: Path, url: str, relative: Path):
        async with self.client.stream(url) as response:
            response.raise_for_status()
            logger.info(f"Writing {relative}")
            await write_stream_to_file(path, response)

    async def sync_file(self, resource: Resource, path: Path, relative: Path):
        if self.options.skip_files:
            return
        if path.exists() and not self.options.force:
            logger.debug(f"Skipping download, file exists already: {relative}")
            return
        await self._download_to(path, resource.locator.raw, relative)

    async def sync_forum(self, resource: Resource, path: Path, relative: Path):
        if not self.options.forum:
            return
        create_dir(path)
        url = resource.locator.raw
        soup = await self.client.get_html(url)

        list_link = show_all_link(soup)
        if list_link is None:
            if forum_is_empty(soup):
                return
            raise PageStructureError("can't find forum thread count selector (empty forum?)")

        soup = await self.client.get_html(list_link)
        for row in forum_threads(soup, url):
            thread = resource_from_link(row.href, row.title, base_url=self.base_url)
            if thread.kind != ResourceKind.THREAD:
                raise PageStructureError(f"thr_pk not found for thread {row.title!r}")

            thread_path = path / file_escape(f"{thread.locator.thr_pk}_{row.title}")
            saved_posts = count_entries(thread_path)
            if row.post_count <= saved_posts and not self.options.force:
                continue
            self.submit(thread, thread_path)

        if forum_has_more_pages(soup):
            logger.info(f"Ignoring older threads in {relative}..")

    async def sync_thread(self, resource: Resource, path: Path, relative: Path):
        if not self.options.forum:
            return
        create_dir(path)
        url = resource.locator.raw
        soup = await self.client.get_html(url)

        posts = thread_posts(soup)
        for post in posts:
            name = file_escape(post.file_name)
            logger.info(f"Writing {relative / name}")
            write_file_data(path / name, wrap_html(post.html))

        next_page = thread_next_page(soup, url)
        if next_page is not None:
            self.submit(Resource.of(ResourceKind.THREAD, parse_locator(next_page, self.base_url)), path)

        for post in posts:
            for src in post.images:
                name = file_escape(image_file_name(post.id, src))
                await self._download_to(path / name, resolve_href(src, self.base_url), relative / name)
            for title, href in post.attachments:
                name = file_escape(f"{post.id}_{title}")
                await self._download_to(path / name, resolve_href(href, self.base_url), relative / name)

    async def sync_exercise(self, resource: Resource, path: Path, relative: Path):
        create_dir(path)
        soup = await self.client.get_html(resource.locator.raw)

        taken: Set[str] = set()
        for href, name in exercise_links(soup):
            try:
                locator = parse_locator(href, self.base_url)
            except InvalidLocator as e:
                logger.debug(f"Skipping exercise link: {e}")
                continue
            if locator.cmd not in EXERCISE_DOWNLOAD_CMDS:
                continue
            if name is None:
                raise PageStructureError(f"link without file name in {relative}")
            file = Resource.of(ResourceKind.FILE, locator, name)
            self.submit(file, path / unique_file_name(file_escape(name), taken))

    async def sync_video_list(self, resource: Resource, path: Path, relative: Path):
        if self.options.no_videos:
            return
        create_dir(path)

        list_url = self.base_url + VIDEO_LIST_PATH.format(ref_id=resource.locator.ref_id)
        logger.debug(f"Loading {list_url}")
        fragment = await self.client.get_html_fragment(list_url)
        full_link = show_all_link(fragment)
        if full_link is None:
            raise PageStructureError("video list link not found")

        full_url = rewrite_video_list_url(urljoin(self.base_url, full_link))
        logger.debug(f"Loading {full_url}")
        table = await self.client.get_html_fragment(full_url)
        for row in video_rows(table):
            if row.href is None:
                if not row.placeholder:
                    logger.warning(f"table row without link in {resource.locator.raw}")
                continue
            logger.debug(f"Found video: {row.title}")
            video = Resource.of(ResourceKind.VIDEO, raw_locator(row.href))
            self.submit(video, path / f"{file_escape(row.title)}.mp4")

    async def sync_video(self, resource: Resource, path: Path, relative: Path):
        if self.options.no_videos:
            return
        if path.exists() and not (self.options.force or self.options.check_videos):
            logger.debug(f"Skipping download, file exists already: {relative}")
            return

        html = await self.client.get_text(resource.locator.raw)
        streams = player_streams(html)
        if len(streams) == 1:
            await self._download_video(path, streams[0], relative)
            return

        create_dir(path)
        for i, src in enumerate(streams, 1):
            name = f"Stream{i}.mp4"
            await self._download_video(path / name, src, relative / name)

    async def _download_video(self, path: Path, url: str, relative: Path):
        if not self.options.force and path.exists() and self.options.check_videos:
            response = await self.client.head(url)
            length = response.headers.get('content-length')
            if length is not None and int(length) != path.stat().st_size:
                logger.warning(f"{relative} was updated, consider moving the outdated file")
            return
        await self._download_to(path, url, relative)

    async def sync_weblink(self, resource: Resource, path: Path, relative: Path):
        if path.exists() and not self.options.force:
            logger.debug(f"Skipping download, link exists already: {relative}")
            return

        try:
            response = await self.client.head(resource.locator.raw)
            final_url = str(response.url)
        except httpx.RequestError as e:
            logger.warning(f"HEAD request to {resource.locator.raw} failed: {e}")
            final_url = str(e.request.url)

        if not final_url.startswith(self.base_url):
            logger.info(f"Writing {relative}")
            write_file_data(path, final_url)
            return

        # link list
        if not path.exists():
            create_dir(path)
            logger.info(f"Writing {relative}")
        soup = await self.client.get_html(final_url)
        for href, text in page_links(soup):
            try:
                locator = parse_locator(href, self.base_url)
            except InvalidLocator:
                continue
            if locator.cmd != 'callLink':
                continue
            try:
                response = await self.client.head(locator.raw)
            except httpx.HTTPError as e:
                logger.warning(f"HEAD request to web link {text!r} failed: {e}")
                continue
            write_file_data(path / file_escape(text), str(response.url))

    def get_stats(self) -> Dict[str, int]:
        stats = self.scheduler.get_stats()
        stats['ignored'] = self.ignored
        stats['requests'] = self.client.rate_limiter.get_stats()['spent']
        return stats


def root_resource(options: SyncOptions, base_url: Optional[str] = None) -> Resource:
    """The unit a run starts from: the given page, or the personal desktop."""
    if options.sync_url:
        return resource_from_link(options.sync_url, "", base_url=base_url)
    return Resource.of(ResourceKind.PERSONAL_DESKTOP,
                       parse_locator(settings.PERSONAL_DESKTOP_PATH, base_url))


async def run_sync(options: SyncOptions, client: Optional[httpx.AsyncClient] = None,
                   base_url: Optional[str] = None) -> Dict[str, int]:
    """
    Mirror the remote tree into the output directory.

    Args:
        options: Run configuration
        client: Pre-configured httpx client (tests inject a mock transport here)
        base_url: Site base URL (defaults to settings.ILIAS_URL)

    Returns:
        Summary counts: submitted, completed, failed, ignored, ...

    Raises:
        SyncError: If the start page cannot be classified
    """
    output = options.output
    create_dir(output)
    ignore = IgnoreRules.load(output)
    if len(ignore):
        logger.info(f"Loaded {len(ignore)} ignore file(s) for {output}")

    root = root_resource(options, base_url)
    session_file = output / settings.SESSION_FILE_NAME
    cookies = load_session(session_file) if options.keep_session else None

    async with RequestRateLimiter(options.rate) as rate_limiter:
        async with IliasClient(rate_limiter, client=client, base_url=base_url,
                               proxy=options.proxy, cookies=cookies) as ilias:
            syncer = SiteSyncer(options, ilias, ignore)
            syncer.submit(root, output)
            await syncer.scheduler.join()
            if options.keep_session:
                ilias.save_session(session_file)

    stats = syncer.get_stats()
    logger.info(f"Sync finished: {stats['completed']} units completed, {stats['failed']} failed, "
                f"{stats['ignored']} ignored")
    return stats
