import os
import stat

from panesync.client.credentials import FileCredentialStore, MemoryCredentialStore


def test_memory_store_read_and_clear():
    store = MemoryCredentialStore("tok")
    assert store.read() == "tok"
    store.clear()
    assert store.read() is None


def test_file_store_round_trip_is_private(tmp_path):
    store = FileCredentialStore(tmp_path / "nested" / "token")
    assert store.read() is None

    store.write("secret-token")

    assert store.read() == "secret-token"
    mode = stat.S_IMODE(os.stat(store.path).st_mode)
    assert mode == 0o600


def test_file_store_strips_whitespace_and_treats_blank_as_missing(tmp_path):
    path = tmp_path / "token"
    path.write_text("  abc\n", encoding="utf-8")
    assert FileCredentialStore(path).read() == "abc"
    path.write_text("\n", encoding="utf-8")
    assert FileCredentialStore(path).read() is None


def test_file_store_clear_is_idempotent(tmp_path):
    store = FileCredentialStore(tmp_path / "token")
    store.write("abc")
    store.clear()
    store.clear()
    assert not store.path.exists()
    assert store.read() is None
