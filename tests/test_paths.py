"""
Tests for URL path <-> key translation
"""

import pytest

from drivedav.paths import (
    destination_to_key,
    display_name,
    is_hidden_sidecar,
    join_key,
    key_to_href,
    normalize_key,
    path_to_key,
)


class TestPathToKey:
    """Request paths under the mount prefix"""

    def test_mount_root(self):
        assert path_to_key("/dav", "/dav") == ""
        assert path_to_key("/dav/", "/dav") == ""
        assert path_to_key("/dav//", "/dav") == ""

    def test_nested_keys(self):
        assert path_to_key("/dav/notes.txt", "/dav") == "notes.txt"
        assert path_to_key("/dav/a/b/c.txt", "/dav") == "a/b/c.txt"
        assert path_to_key("/dav/folder/", "/dav") == "folder"

    def test_repeated_slashes_collapse(self):
        assert path_to_key("//dav//a///b", "/dav") == "a/b"

    def test_outside_mount(self):
        assert path_to_key("/", "/dav") is None
        assert path_to_key("/other/file", "/dav") is None
        # Prefix match must end at a segment boundary
        assert path_to_key("/davx/file", "/dav") is None
        assert path_to_key("", "/dav") is None

    def test_decoded_characters_are_kept(self):
        assert path_to_key("/dav/my file #1.txt", "/dav") == "my file #1.txt"

    def test_mount_without_leading_slash(self):
        assert path_to_key("/share/a", "share/") == "a"


class TestDestination:
    """MOVE Destination headers"""

    def test_absolute_url(self):
        assert destination_to_key("http://localhost:4918/dav/b.txt", "/dav") == "b.txt"

    def test_bare_path(self):
        assert destination_to_key("/dav/dir/b.txt", "/dav") == "dir/b.txt"

    def test_percent_encoded(self):
        assert destination_to_key("http://h/dav/new%20name.txt", "/dav") == "new name.txt"

    @pytest.mark.parametrize("header", [None, "", "http://h/elsewhere/b.txt", "/davx/b.txt"])
    def test_invalid(self, header):
        assert destination_to_key(header, "/dav") is None


class TestKeyHelpers:
    """Canonical key helpers"""

    def test_normalize_key(self):
        assert normalize_key("/a/b/") == "a/b"
        assert normalize_key("a//b") == "a/b"
        assert normalize_key("a\\b") == "a/b"
        assert normalize_key("/") == ""

    def test_key_to_href(self):
        assert key_to_href("/dav/", "") == "/dav/"
        assert key_to_href("/dav/", "", is_collection=True) == "/dav/"
        assert key_to_href("/dav/", "notes.txt") == "/dav/notes.txt"
        assert key_to_href("/dav/", "docs", is_collection=True) == "/dav/docs/"
        assert key_to_href("/dav/", "my docs/a#1.txt") == "/dav/my%20docs/a%231.txt"

    def test_display_name(self):
        assert display_name("a/b/c.txt") == "c.txt"
        assert display_name("", "dav") == "dav"

    def test_join_key(self):
        assert join_key("", "a") == "a"
        assert join_key("a/", "/b") == "a/b"

    def test_hidden_sidecar(self):
        assert is_hidden_sidecar("._notes.txt")
        assert is_hidden_sidecar("docs/._photo.jpg")
        assert not is_hidden_sidecar("docs/_photo.jpg")
        assert not is_hidden_sidecar("._dir/photo.jpg")
