from __future__ import annotations

import json
import os
import sys

import pytest

from servez.errors import RequestIOError
from servez.listing import DirectoryListingRenderer, ListingEntry, parent_href, read_entries, sort_entries, wants_json


def test_directories_first_then_case_insensitive(tmp_path):
    (tmp_path / "b.txt").write_text("b", encoding="utf-8")
    (tmp_path / "A").mkdir()
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    names = [entry.name for entry in read_entries(tmp_path, str(tmp_path.resolve()))]
    assert names == ["A", "a.txt", "b.txt"]


def test_sort_is_stable_for_names_differing_only_in_case():
    entries = [
        ListingEntry("readme", False),
        ListingEntry("README", False),
        ListingEntry("zeta", True),
    ]
    assert [entry.name for entry in sort_entries(entries)] == ["zeta", "README", "readme"]


def test_hidden_files_are_skipped(tmp_path):
    (tmp_path / ".secret").write_text("x", encoding="utf-8")
    (tmp_path / "visible.txt").write_text("x", encoding="utf-8")
    names = [entry.name for entry in read_entries(tmp_path, str(tmp_path.resolve()))]
    assert names == ["visible.txt"]


def test_file_sizes_and_directory_sizes(tmp_path):
    (tmp_path / "five.bin").write_bytes(b"12345")
    (tmp_path / "nested").mkdir()
    entries = {entry.name: entry for entry in read_entries(tmp_path, str(tmp_path.resolve()))}
    assert entries["five.bin"].size == 5
    assert entries["nested"].size is None
    assert entries["nested"].mtime is not None


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_links_leaving_root_are_not_listed(tmp_path):
    root = tmp_path / "root"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    os.symlink(outside, root / "escape")
    os.symlink(root / "missing", root / "broken")
    (root / "kept.txt").write_text("k", encoding="utf-8")
    names = [entry.name for entry in read_entries(root, str(root.resolve()))]
    assert names == ["kept.txt"]


def test_unreadable_directory_raises_request_io_error(tmp_path):
    with pytest.raises(RequestIOError):
        read_entries(tmp_path / "gone", str(tmp_path.resolve()))


def test_parent_link_omitted_at_root():
    assert parent_href("/") is None
    assert parent_href("") is None
    assert parent_href("/docs/") == "/"
    assert parent_href("/docs/api") == "/docs/"


def test_html_listing_contains_parent_and_escaped_entries(tmp_path):
    renderer = DirectoryListingRenderer(str(tmp_path))
    entries = [ListingEntry("sub dir", True), ListingEntry("<b>.txt", False, size=2048)]
    body = renderer.render_html("/docs/", entries)
    assert '<a href="/">..</a>' in body
    assert 'href="/docs/sub%20dir/"' in body
    assert "&lt;b&gt;.txt" in body
    assert "2.0 kB" in body
    assert "listing directory /docs/" in body


def test_html_listing_at_root_has_no_parent(tmp_path):
    body = DirectoryListingRenderer(str(tmp_path)).render_html("/", [ListingEntry("a.txt", False, size=1)])
    assert ">..</a>" not in body
    assert 'href="/a.txt"' in body


def test_json_listing_keeps_order(tmp_path):
    renderer = DirectoryListingRenderer(str(tmp_path))
    payload = json.loads(renderer.render_json([ListingEntry("A", True), ListingEntry("a.txt", False, size=1)]))
    assert [item["name"] for item in payload] == ["A", "a.txt"]
    assert payload[0]["type"] == "directory"
    assert payload[1]["size"] == 1


@pytest.mark.parametrize(
    "accept, expected",
    [
        (None, False),
        ("*/*", False),
        ("application/json", True),
        ("text/html,application/json;q=0.9", False),
        ("application/json, text/plain, */*", True),
        ("text/html;q=0.5, application/json", True),
    ],
)
def test_wants_json(accept, expected):
    assert wants_json(accept) is expected


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs a filesystem that accepts raw byte names")
def test_undecodable_name_renders_with_replacement_character(tmp_path):
    with open(os.path.join(os.fsencode(tmp_path), b"bad\xff.txt"), "wb") as handle:
        handle.write(b"x")
    renderer = DirectoryListingRenderer(str(tmp_path.resolve()))
    entries = renderer.entries(tmp_path)
    page = renderer.render_html("/", entries)
    page.encode("utf-8")
    assert 'href="/bad%FF.txt"' in page
    assert ">bad�.txt</a>" in page
    assert json.loads(renderer.render_json(entries))[0]["name"] == "bad�.txt"
