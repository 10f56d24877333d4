import pytest

from attrauthgocdb.exception import UnknownStateHandle
from attrauthgocdb.state import build_capability
from attrauthgocdb.state import FileStateStore
from attrauthgocdb.state import HANDLE_PATTERN
from attrauthgocdb.state import InMemoryStateStore
from attrauthgocdb.state import RecordingRedirector

STATE = {
    "Attributes": {"distinguishedName": ["/C=GR/CN=Alice"]},
    "attrauthgocdb:error_msg": "API request failed"
}


def test_in_memory_store():
    store = InMemoryStateStore()
    handle = store.save(STATE, "attrauthgocdb:error_state")
    assert HANDLE_PATTERN.fullmatch(handle)
    assert len(store) == 1

    _state = store.load(handle, "attrauthgocdb:error_state")
    assert _state == STATE
    # a copy is handed out
    _state["Attributes"]["distinguishedName"].append("/C=GR/CN=Bob")
    assert store.load(handle, "attrauthgocdb:error_state") == STATE

    with pytest.raises(UnknownStateHandle):
        store.load(handle, "other:stage")

    with pytest.raises(UnknownStateHandle):
        store.load("unknown", "attrauthgocdb:error_state")


def test_file_store(tmp_path):
    store = FileStateStore(str(tmp_path / "states"))
    handle = store.save(STATE, "attrauthgocdb:error_state")
    assert (tmp_path / "states" / f"{handle}.json").is_file()

    assert store.load(handle, "attrauthgocdb:error_state") == STATE

    with pytest.raises(UnknownStateHandle):
        store.load(handle, "other:stage")

    with pytest.raises(UnknownStateHandle):
        store.load("../../etc/passwd", "attrauthgocdb:error_state")

    with pytest.raises(UnknownStateHandle):
        store.load("abc123", "attrauthgocdb:error_state")


def test_unique_handles():
    store = InMemoryStateStore()
    handles = {store.save(STATE, "stage") for _ in range(10)}
    assert len(handles) == 10


def test_redirector():
    redirector = RecordingRedirector()
    assert redirector.location is None
    _loc = redirector.redirect_to("https://idp.example.org/module/user_in_form",
                                  {"StateId": "abc"})
    assert _loc == "https://idp.example.org/module/user_in_form?StateId=abc"
    assert redirector.location == _loc

    redirector.redirect_to("https://idp.example.org/error?lang=en", {"StateId": "abc"})
    assert redirector.location == "https://idp.example.org/error?lang=en&StateId=abc"


def test_build_capability(tmp_path):
    assert isinstance(build_capability(None, InMemoryStateStore), InMemoryStateStore)

    _store = InMemoryStateStore()
    assert build_capability(_store, InMemoryStateStore) is _store

    _store = build_capability({"class": FileStateStore, "kwargs": {"directory": str(tmp_path)}},
                              InMemoryStateStore)
    assert isinstance(_store, FileStateStore)
    assert _store.directory == str(tmp_path)

    _redirector = build_capability({"class": "attrauthgocdb.state.RecordingRedirector"},
                                   InMemoryStateStore)
    assert isinstance(_redirector, RecordingRedirector)


def test_file_store_url_safe_handle(tmp_path, monkeypatch):
    monkeypatch.setattr("attrauthgocdb.state.rndstr", lambda size: "dp0n-qkOi_LmRqwt84s6")
    store = FileStateStore(str(tmp_path))
    handle = store.save(STATE, "attrauthgocdb:error_state")
    assert handle == "dp0n-qkOi_LmRqwt84s6"
    assert store.load(handle, "attrauthgocdb:error_state") == STATE

    with pytest.raises(UnknownStateHandle, match="No saved state"):
        store.load("Zz-_09", "attrauthgocdb:error_state")

    with pytest.raises(UnknownStateHandle, match="Not a valid handle"):
        store.load("dp0n/../x", "attrauthgocdb:error_state")
