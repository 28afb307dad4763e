import os
import stat

import pytest

from caddyforge.fileops import copy_tree


@pytest.fixture
def source_tree(tmp_path):
    src = tmp_path / "site"
    (src / "css").mkdir(parents=True)
    (src / "index.html").write_text("<h1>hello</h1>")
    (src / "css" / "main.css").write_text("body {}")
    return src


def test_copies_nested_files(source_tree, tmp_path):
    dst = tmp_path / "out" / "files"
    copy_tree(str(source_tree), str(dst))
    assert (dst / "index.html").read_text() == "<h1>hello</h1>"
    assert (dst / "css" / "main.css").read_text() == "body {}"


def test_copy_has_same_layout(source_tree, tmp_path):
    dst = tmp_path / "copy"
    copy_tree(str(source_tree), str(dst))

    def layout(root):
        return sorted(
            os.path.relpath(os.path.join(d, f), root)
            for d, _, files in os.walk(root)
            for f in files
        )

    assert layout(dst) == layout(source_tree)


def test_preserves_file_mode(source_tree, tmp_path):
    script = source_tree / "run.sh"
    script.write_text("echo hi")
    os.chmod(script, 0o750)
    dst = tmp_path / "copy"
    copy_tree(str(source_tree), str(dst))
    assert stat.S_IMODE(os.stat(dst / "run.sh").st_mode) == stat.S_IMODE(
        os.stat(script).st_mode
    )


def test_recreates_symlinks(source_tree, tmp_path):
    os.symlink("index.html", source_tree / "home.html")
    dst = tmp_path / "copy"
    copy_tree(str(source_tree), str(dst))
    assert os.path.islink(dst / "home.html")
    assert os.readlink(dst / "home.html") == "index.html"


def test_single_file_source(tmp_path):
    src = tmp_path / "one.txt"
    src.write_text("content")
    dst = tmp_path / "two.txt"
    copy_tree(str(src), str(dst))
    assert dst.read_text() == "content"


def test_overwrites_existing_file(source_tree, tmp_path):
    dst = tmp_path / "copy"
    dst.mkdir()
    (dst / "index.html").write_text("old and longer content than the new one")
    copy_tree(str(source_tree), str(dst))
    assert (dst / "index.html").read_text() == "<h1>hello</h1>"


def test_missing_source_raises(tmp_path):
    missing = tmp_path / "nope"
    with pytest.raises(FileNotFoundError, match="failed to copy"):
        copy_tree(str(missing), str(tmp_path / "dst"))