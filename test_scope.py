"""
Tests for layered ignore files
"""
import logging
import sys
from pathlib import Path

# Add the app directory to Python path
sys.path.insert(0, str(Path(__file__).parent / 'app'))

from iliassync.scope import IgnoreRules, load_ignore_file, match_verdict

IGNORE = '.iliasignore'


def make_target(tmp_path: Path) -> Path:
    target = tmp_path / 'KIT' / 'SS 23' / 'NGI'
    target.mkdir(parents=True)
    return target


def test_most_specific_file_wins(tmp_path):
    target = make_target(tmp_path)
    (target / IGNORE).write_text("foo/\n")
    (target.parent / IGNORE).write_text("!NGI/foo/bar\n")

    rules = IgnoreRules.load(target)
    assert len(rules) == 2
    assert rules.should_ignore('foo/bar', is_dir=False)
    assert rules.should_ignore('foo', is_dir=True)


def test_re_include_short_circuits(tmp_path):
    target = make_target(tmp_path)
    (target / IGNORE).write_text("!Lectures/\n")
    (target.parent / IGNORE).write_text("NGI/Lectures/\n")

    rules = IgnoreRules.load(target)
    assert not rules.should_ignore('Lectures', is_dir=True)


def test_parent_patterns_apply_with_prefix(tmp_path):
    target = make_target(tmp_path)
    (tmp_path / 'KIT' / IGNORE).write_text("SS 23/NGI/Videos/\n*.mp4\n")

    rules = IgnoreRules.load(target)
    assert rules.ignores[0].prefix == 'SS 23/NGI/'
    assert rules.should_ignore('Videos', is_dir=True)
    assert rules.should_ignore('Lectures/intro.mp4', is_dir=False)
    assert not rules.should_ignore('Lectures', is_dir=True)


def test_later_patterns_override_earlier_ones(tmp_path):
    target = make_target(tmp_path)
    (target / IGNORE).write_text("*.pdf\n!keep.pdf\n")

    rules = IgnoreRules.load(target)
    assert rules.should_ignore('slides.pdf', is_dir=False)
    assert not rules.should_ignore('keep.pdf', is_dir=False)


def test_directory_flag_matters(tmp_path):
    target = make_target(tmp_path)
    (target / IGNORE).write_text("Uebungen/\n")

    rules = IgnoreRules.load(target)
    assert rules.should_ignore('Uebungen', is_dir=True)
    assert not rules.should_ignore('Uebungen', is_dir=False)


def test_sync_target_itself_is_never_ignored(tmp_path):
    target = make_target(tmp_path)
    (target / IGNORE).write_text("*\n")

    rules = IgnoreRules.load(target)
    assert not rules.should_ignore('', is_dir=True)
    assert not rules.should_ignore('.', is_dir=True)
    assert not rules.should_ignore(Path('.'), is_dir=True)
    assert rules.should_ignore('anything', is_dir=False)


def test_no_ignore_files(tmp_path):
    rules = IgnoreRules.load(make_target(tmp_path))
    assert len(rules) == 0
    assert not rules.should_ignore('foo', is_dir=True)


def test_empty_ignore_file_is_skipped(tmp_path):
    target = make_target(tmp_path)
    (target / IGNORE).write_text("# only a comment\n\n")
    assert load_ignore_file(target / IGNORE) is None
    assert len(IgnoreRules.load(target)) == 0


def test_malformed_ignore_file_is_reported_and_skipped(tmp_path, caplog):
    caplog.set_level(logging.WARNING)
    target = make_target(tmp_path)
    (target / IGNORE).write_bytes(b"\xff\xfe\xfa not utf-8\n")
    (target.parent / IGNORE).write_text("NGI/foo\n")

    rules = IgnoreRules.load(target)
    assert len(rules) == 1
    assert rules.should_ignore('foo', is_dir=False)
    assert any("malformed ignore file" in record.message for record in caplog.records)


def test_match_verdict_without_match(tmp_path):
    path = tmp_path / IGNORE
    path.write_text("foo\n")
    spec = load_ignore_file(path)
    assert match_verdict(spec, 'bar') is None
    assert match_verdict(spec, 'foo') is True
