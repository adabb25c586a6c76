"""
Routing table from parsed links to resource kinds.

Anything the table does not recognize becomes a Generic resource, which the
crawler logs and leaves alone.
"""
from typing import Dict, Optional

from .errors import MissingFileMetadata, UnclassifiableLocator
from .locator import parse_locator
from .models import FileMetadataHint, Locator, Resource, ResourceKind
import settings

REDIRECTOR_PATH = 'goto.php'
NO_TARGET = 'NONE'
VERSION_PREFIX = 'Version: '

# lower-cased baseClass -> kind; ilrepositorygui is resolved separately
BASE_CLASS_KINDS: Dict[str, ResourceKind] = {
    'ilexercisehandlergui': ResourceKind.EXERCISE_HANDLER,
    'ililwikihandlergui': ResourceKind.WIKI,
    'illinkresourcehandlergui': ResourceKind.WEBLINK,
    'ilobjsurveygui': ResourceKind.SURVEY,
    'illmpresentationgui': ResourceKind.PRESENTATION,
    'ilobjplugindispatchgui': ResourceKind.PLUGIN_DISPATCH,
    'ilpersonaldesktopgui': ResourceKind.PERSONAL_DESKTOP,
}


def _ref_id_from_target(locator: Locator) -> Locator:
    ref_id = locator.target.split('_')[1]
    return locator.model_copy(update={'ref_id': ref_id})


def file_name(name: str, hint: FileMetadataHint) -> str:
    """Compose `{name}[_v{version}].{extension}` from a listing entry."""
    version = hint.version.strip()
    if version.startswith(VERSION_PREFIX):
        name += f"_v{version[len(VERSION_PREFIX):]}"
    return f"{name}.{hint.extension.strip()}"


def _classify_redirector(locator: Locator, name: str,
                         hint: Optional[FileMetadataHint]) -> Optional[Resource]:
    target = locator.target if locator.target is not None else NO_TARGET

    if target.startswith('wiki_'):
        return Resource.of(ResourceKind.WIKI, locator, name)
    if target.startswith('root_'):
        # magazine / portal pages
        return Resource.of(ResourceKind.GENERIC, locator, name)
    if target.startswith('crs_'):
        return Resource.of(ResourceKind.COURSE, _ref_id_from_target(locator), name)
    if target.startswith('frm_'):
        return Resource.of(ResourceKind.FORUM, _ref_id_from_target(locator), name)
    if target.startswith('lm_'):
        return Resource.of(ResourceKind.PRESENTATION, locator, name)
    if target.startswith('fold_'):
        return Resource.of(ResourceKind.FOLDER, _ref_id_from_target(locator), name)
    if target.startswith('file_'):
        if not target.endswith('download'):
            # info page of the file, not the file itself
            return Resource.of(ResourceKind.GENERIC, locator, name)
        if hint is None:
            raise MissingFileMetadata(f"no file metadata next to {locator.raw}")
        return Resource.of(ResourceKind.FILE, locator, file_name(name, hint))
    if target == NO_TARGET:
        return None
    return Resource.of(ResourceKind.GENERIC, locator, name)


def classify(locator: Locator, name: str = "", hint: Optional[FileMetadataHint] = None,
             base_url: Optional[str] = None) -> Resource:
    """
    Turn a Locator into a typed Resource.

    Rules are evaluated top to bottom, first match wins: thread links, then the
    redirector endpoint (dispatching on the `target` prefix), then forum thread
    lists, then the lower-cased `baseClass`.

    Args:
        locator: Parsed link
        name: Link text, used as display name
        hint: File extension/version markup, required for file downloads via the redirector
        base_url: Site base URL (defaults to settings.ILIAS_URL)

    Returns:
        Classified Resource

    Raises:
        MissingFileMetadata: If a redirector file download has no hint
    """
    base_url = base_url or settings.ILIAS_URL

    if locator.thr_pk is not None:
        return Resource.of(ResourceKind.THREAD, locator, name)

    if locator.raw.startswith(base_url + REDIRECTOR_PATH):
        resource = _classify_redirector(locator, name, hint)
        if resource is not None:
            return resource
    elif locator.cmd == 'showThreads':
        return Resource.of(ResourceKind.FORUM, locator, name)

    # baseClass is sometimes CamelCase, sometimes not
    base_class = (locator.base_class or '').lower()
    if base_class == 'ilrepositorygui':
        if locator.cmd in ('view', 'render'):
            return Resource.of(ResourceKind.FOLDER, locator, name)
        if locator.cmd is not None:
            return Resource.of(ResourceKind.GENERIC, locator, name)
        return Resource.of(ResourceKind.COURSE, locator, name)

    kind = BASE_CLASS_KINDS.get(base_class, ResourceKind.GENERIC)
    return Resource.of(kind, locator, name)


def resource_from_link(href: Optional[str], text: str = "", hint: Optional[FileMetadataHint] = None,
                       base_url: Optional[str] = None) -> Resource:
    """
    Parse and classify a link found in a page.

    Args:
        href: The link's href attribute (may be missing)
        text: The link text
        hint: File metadata from the surrounding listing entry

    Returns:
        Classified Resource

    Raises:
        UnclassifiableLocator: If the link has no href
        InvalidLocator: If the href is not a valid URL
        MissingFileMetadata: If a file download has no metadata
    """
    if not href or not href.strip():
        raise UnclassifiableLocator(f"link {text!r} has no href")
    name = text.replace('/', '-').strip()
    return classify(parse_locator(href.strip(), base_url), name, hint, base_url)
