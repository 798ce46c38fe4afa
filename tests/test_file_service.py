import os

from file_service import URL_PREFIX, FileStore


def test_create_open_release(files):
    url = files.create_url(b"%PDF", "notes.pdf", "application/pdf")
    assert url.startswith(URL_PREFIX)

    path, name, content_type = files.open(url)
    assert (name, content_type) == ("notes.pdf", "application/pdf")
    with open(path, "rb") as f:
        assert f.read() == b"%PDF"

    assert files.release(url) is True
    assert files.open(url) is None
    assert not os.path.exists(path)
    assert files.release(url) is False


def test_each_upload_gets_its_own_url(files):
    urls = {files.create_url(b"x", "same.txt") for _ in range(5)}
    assert len(urls) == 5


def test_foreign_urls_are_ignored(files):
    assert files.open("https://example.com/file.pdf") is None
    assert files.release("") is False


def test_upload_dir_is_created(tmp_path):
    target = tmp_path / "nested" / "uploads"
    FileStore(str(target))
    assert target.is_dir()
