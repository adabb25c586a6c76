"""
Tests for the resource classifier
"""
import sys
from pathlib import Path

import pytest

# Add the app directory to Python path
sys.path.insert(0, str(Path(__file__).parent / 'app'))

from iliassync.classify import classify, file_name, resource_from_link
from iliassync.errors import MissingFileMetadata, UnclassifiableLocator
from iliassync.locator import parse_locator
from iliassync.models import FileMetadataHint, ResourceKind

BASE = "https://ilias.studium.kit.edu/"


def goto(target: str, extra: str = "") -> str:
    return f"{BASE}goto.php?target={target}&client_id=produktiv{extra}"


def test_thread_wins_over_everything():
    for href in (
        goto("crs_1", "&thr_pk=5"),
        "ilias.php?baseClass=ilRepositoryGUI&thr_pk=5",
        "ilias.php?cmd=showThreads&thr_pk=5",
        "ilias.php?baseClass=ilExerciseHandlerGUI&thr_pk=5",
    ):
        resource = classify(parse_locator(href), "Thread")
        assert resource.kind == ResourceKind.THREAD
        assert resource.name == "5"


def test_redirector_course_extracts_ref_id():
    resource = classify(parse_locator(goto("crs_55_oldstuff")), "Algorithms")
    assert resource.kind == ResourceKind.COURSE
    assert resource.locator.ref_id == "55"
    assert resource.name == "Algorithms"


def test_redirector_forum_and_folder_extract_ref_id():
    forum = classify(parse_locator(goto("frm_12")))
    folder = classify(parse_locator(goto("fold_34")))
    assert (forum.kind, forum.locator.ref_id) == (ResourceKind.FORUM, "12")
    assert (folder.kind, folder.locator.ref_id) == (ResourceKind.FOLDER, "34")


@pytest.mark.parametrize("target,kind", [
    ("wiki_1", ResourceKind.WIKI),
    ("root_1", ResourceKind.GENERIC),
    ("lm_1", ResourceKind.PRESENTATION),
    ("grp_1", ResourceKind.GENERIC),
])
def test_redirector_prefixes(target, kind):
    assert classify(parse_locator(goto(target))).kind == kind


def test_file_metadata_page_is_generic():
    hint = FileMetadataHint(extension="pdf", version="Version: 2")
    for target in ("file_99", "file_99_info", "file_99_downloads_page"):
        resource = classify(parse_locator(goto(target)), "Slides", hint)
        assert resource.kind == ResourceKind.GENERIC


def test_file_download_requires_hint():
    with pytest.raises(MissingFileMetadata):
        classify(parse_locator(goto("file_99_download")), "Slides")


def test_file_download_name_with_version():
    hint = FileMetadataHint(extension=" pdf ", version="Version: 3")
    resource = classify(parse_locator(goto("file_99_download")), "Slides", hint)
    assert resource.kind == ResourceKind.FILE
    assert resource.name == "Slides_v3.pdf"


def test_file_download_name_without_version():
    hint = FileMetadataHint(extension="zip", version="12.03.2023")
    resource = classify(parse_locator(goto("file_99_download")), "Code", hint)
    assert resource.name == "Code.zip"


def test_file_name_helper():
    assert file_name("a", FileMetadataHint(extension="txt")) == "a.txt"


def test_redirector_without_target_falls_through_to_base_class():
    locator = parse_locator(f"{BASE}goto.php?baseClass=ilExerciseHandlerGUI")
    assert classify(locator).kind == ResourceKind.EXERCISE_HANDLER
    assert classify(parse_locator(f"{BASE}goto.php")).kind == ResourceKind.GENERIC


def test_show_threads_is_forum():
    assert classify(parse_locator("ilias.php?cmd=showThreads&ref_id=3")).kind == ResourceKind.FORUM


@pytest.mark.parametrize("base_class", ["ilRepositoryGUI", "ilrepositorygui", "ILREPOSITORYGUI"])
def test_repository_gui_is_case_insensitive(base_class):
    def kind(query):
        return classify(parse_locator(f"ilias.php?baseClass={base_class}{query}")).kind

    assert kind("") == ResourceKind.COURSE
    assert kind("&cmd=view") == ResourceKind.FOLDER
    assert kind("&cmd=render") == ResourceKind.FOLDER
    assert kind("&cmd=other") == ResourceKind.GENERIC


@pytest.mark.parametrize("base_class,kind", [
    ("ilExerciseHandlerGUI", ResourceKind.EXERCISE_HANDLER),
    ("ilwikihandlergui", ResourceKind.GENERIC),
    ("ilIlWikiHandlerGUI", ResourceKind.WIKI),
    ("ilLinkResourceHandlerGUI", ResourceKind.WEBLINK),
    ("ilObjSurveyGUI", ResourceKind.SURVEY),
    ("ilLMPresentationGUI", ResourceKind.PRESENTATION),
    ("ilObjPluginDispatchGUI", ResourceKind.PLUGIN_DISPATCH),
    ("ilPersonalDesktopGUI", ResourceKind.PERSONAL_DESKTOP),
    ("ilSomethingElseGUI", ResourceKind.GENERIC),
])
def test_base_class_table(base_class, kind):
    assert classify(parse_locator(f"ilias.php?baseClass={base_class}")).kind == kind


def test_missing_base_class_is_generic():
    assert classify(parse_locator("ilias.php?ref_id=1")).kind == ResourceKind.GENERIC


def test_mail_and_script_links_are_generic():
    assert resource_from_link("mailto:dozent@kit.edu", "Dozent").kind == ResourceKind.GENERIC
    assert resource_from_link("javascript:void(0)", "Mehr").kind == ResourceKind.GENERIC


def test_classification_is_idempotent():
    locator = parse_locator(goto("file_1_download"))
    hint = FileMetadataHint(extension="pdf", version="Version: 1")
    first = classify(locator, "Notes", hint)
    second = classify(locator, "Notes", hint)
    assert first == second
    assert locator == parse_locator(goto("file_1_download"))


def test_containers():
    assert classify(parse_locator(goto("crs_1"))).is_container
    assert classify(parse_locator("ilias.php?thr_pk=1")).is_container
    assert not classify(parse_locator(goto("wiki_1"))).is_container
    assert not classify(parse_locator("ilias.php?baseClass=ilLinkResourceHandlerGUI")).is_container


def test_personal_desktop_has_empty_name():
    resource = classify(parse_locator("ilias.php?baseClass=ilPersonalDesktopGUI"), "ignored")
    assert resource.label is None
    assert resource.name == ""


def test_resource_from_link_cleans_name():
    resource = resource_from_link(goto("crs_7"), "  Analysis/Linear Algebra \n")
    assert resource.name == "Analysis-Linear Algebra"


def test_resource_from_link_without_href():
    with pytest.raises(UnclassifiableLocator):
        resource_from_link(None, "no link")
    with pytest.raises(UnclassifiableLocator):
        resource_from_link("  ", "blank link")
