from __future__ import annotations

import os

import pytest

from servez.errors import PathEscape
from servez.resolver import Disposition, PathResolver


def test_regular_file_resolves_to_file(site):
    resolution = PathResolver(site).resolve("/a.txt")
    assert resolution.disposition is Disposition.FILE
    assert resolution.fs_path == (site / "a.txt").resolve()


def test_root_with_index_uses_fallback(site):
    resolution = PathResolver(site).resolve("/")
    assert resolution.disposition is Disposition.INDEX_FALLBACK
    assert resolution.fs_path.name == "index.html"


@pytest.mark.parametrize("url_path", ["/sub", "/sub/"])
def test_subdirectory_index_with_and_without_slash(site, url_path):
    (site / "sub").mkdir()
    (site / "sub" / "index.html").write_text("sub", encoding="utf-8")
    resolution = PathResolver(site).resolve(url_path)
    assert resolution.disposition is Disposition.INDEX_FALLBACK
    assert resolution.fs_path == (site / "sub" / "index.html").resolve()


def test_directory_without_index_lists_when_enabled(site):
    resolution = PathResolver(site).resolve("/docs/")
    assert resolution.disposition is Disposition.DIRECTORY


def test_directory_without_index_is_not_found_when_listing_disabled(site):
    resolution = PathResolver(site, dirs=False).resolve("/docs/")
    assert resolution.disposition is Disposition.NOT_FOUND


def test_index_disabled_falls_back_to_listing(site):
    resolution = PathResolver(site, index=False).resolve("/")
    assert resolution.disposition is Disposition.DIRECTORY


def test_index_and_listing_disabled(site):
    resolution = PathResolver(site, index=False, dirs=False).resolve("/")
    assert resolution.disposition is Disposition.NOT_FOUND


def test_index_html_directory_does_not_count(site):
    (site / "docs" / "index.html").mkdir()
    resolution = PathResolver(site).resolve("/docs/")
    assert resolution.disposition is Disposition.DIRECTORY


def test_missing_path_is_not_found(site):
    resolution = PathResolver(site).resolve("/missing.txt")
    assert resolution.disposition is Disposition.NOT_FOUND
    assert resolution.fs_path is None


@pytest.mark.parametrize(
    "url_path",
    ["/../etc/passwd", "/../../etc/passwd", "/docs/../../outside.txt", "/..\\outside.txt"],
)
def test_traversal_raises_path_escape(site, url_path):
    (site.parent / "outside.txt").write_text("secret", encoding="utf-8")
    with pytest.raises(PathEscape):
        PathResolver(site).resolve(url_path)


def test_dotdot_inside_root_is_normalised(site):
    resolution = PathResolver(site).resolve("/docs/../a.txt")
    assert resolution.disposition is Disposition.FILE


def test_nul_byte_is_rejected(site):
    with pytest.raises(PathEscape):
        PathResolver(site).resolve("/a.txt\x00.html")


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_out_of_root_is_an_escape(site):
    outside = site.parent / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("secret", encoding="utf-8")
    os.symlink(outside, site / "link")
    with pytest.raises(PathEscape):
        PathResolver(site).resolve("/link/secret.txt")


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_inside_root_is_followed(site):
    os.symlink(site / "a.txt", site / "alias.txt")
    resolution = PathResolver(site).resolve("/alias.txt")
    assert resolution.disposition is Disposition.FILE
    assert resolution.fs_path == (site / "a.txt").resolve()


def test_dotfiles_are_hidden(site):
    (site / ".env").write_text("TOKEN=1", encoding="utf-8")
    (site / ".git").mkdir()
    (site / ".git" / "config").write_text("[core]", encoding="utf-8")
    resolver = PathResolver(site)
    assert resolver.resolve("/.env").disposition is Disposition.NOT_FOUND
    assert resolver.resolve("/.git/config").disposition is Disposition.NOT_FOUND


def test_extension_fallback_in_configured_order(site):
    (site / "about.html").write_text("about", encoding="utf-8")
    (site / "about.htm").write_text("old", encoding="utf-8")
    resolution = PathResolver(site, extensions=("html", "htm")).resolve("/about")
    assert resolution.disposition is Disposition.FILE
    assert resolution.fs_path.name == "about.html"


def test_extension_fallback_disabled_by_default(site):
    (site / "about.html").write_text("about", encoding="utf-8")
    assert PathResolver(site).resolve("/about").disposition is Disposition.NOT_FOUND


def test_filesystem_is_rechecked_on_every_call(site):
    resolver = PathResolver(site)
    assert resolver.resolve("/late.txt").disposition is Disposition.NOT_FOUND
    (site / "late.txt").write_text("late", encoding="utf-8")
    assert resolver.resolve("/late.txt").disposition is Disposition.FILE
    (site / "late.txt").unlink()
    assert resolver.resolve("/late.txt").disposition is Disposition.NOT_FOUND
