import os

import pytest

from tagforge.errors import PathTraversalError
from tagforge.util.fs import is_shared_module, resolve_within_root, safe_join


@pytest.mark.parametrize(
    "candidate",
    ["..", "../x", "a/../b", "a/..", "a\\..\\b", "./../etc", "src/../../etc/passwd"],
)
def test_resolve_rejects_parent_segments(tmp_path, candidate):
    with pytest.raises(PathTraversalError) as ei:
        resolve_within_root(tmp_path, candidate)
    assert ".." in str(ei.value)


def test_resolve_allows_names_containing_dots(tmp_path):
    assert resolve_within_root(tmp_path, "a..b/c") == os.path.join("a..b", "c")


def test_resolve_returns_relative_path(tmp_path):
    assert resolve_within_root(tmp_path, "src/app") == os.path.join("src", "app")
    assert resolve_within_root(tmp_path, "./src/") == "src"


def test_resolve_root_itself_is_empty(tmp_path):
    assert resolve_within_root(tmp_path, ".") == ""
    assert resolve_within_root(tmp_path, "") == ""


def test_resolve_rejects_absolute_outside(tmp_path):
    with pytest.raises(PathTraversalError):
        resolve_within_root(tmp_path / "project", str(tmp_path / "other"))


def test_resolve_windows_root_is_case_insensitive():
    assert resolve_within_root("C:\\Users\\Me\\app", "C:\\users\\me\\APP\\src") == "src"


def test_resolve_windows_root_rejects_other_drive():
    with pytest.raises(PathTraversalError):
        resolve_within_root("C:\\app", "D:\\app\\x")


def test_resolve_does_not_touch_disk(tmp_path):
    resolve_within_root(tmp_path, "does/not/exist")
    assert not (tmp_path / "does").exists()


def test_safe_join_inside(tmp_path):
    assert safe_join(tmp_path, "a/b.txt") == os.path.join(str(tmp_path), "a/b.txt")


@pytest.mark.parametrize("bad", ["/etc/passwd", "~/secrets", "C:/Windows", "\\\\server\\share", "../../etc/passwd", "..", "src/../a.txt", "a/b/../../../x"])
def test_safe_join_rejects_escapes(tmp_path, bad):
    with pytest.raises(PathTraversalError):
        safe_join(tmp_path, bad)


def test_safe_join_allows_dotdot_prefixed_names(tmp_path):
    assert safe_join(tmp_path, "..hidden").endswith("..hidden")


def test_is_shared_module():
    assert is_shared_module("_shared/util.ts")
    assert is_shared_module("./supabase/functions/_shared/cors.ts")
    assert is_shared_module("supabase\\_shared\\x.ts")
    assert not is_shared_module("src/shared/x.ts")
    assert is_shared_module("lib/common/x.py", ["lib/common/*"])
