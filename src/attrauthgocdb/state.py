"""
What the enricher needs from the host when it has to give up: somewhere to
park the identity state and a way to send the user to an error page.
"""
import copy
import json
import logging
import os
import re
from typing import Optional
from typing import Union
from urllib.parse import urlencode

from cryptojwt.utils import importer
from idpyoidc.util import rndstr

from attrauthgocdb.exception import UnknownStateHandle

logger = logging.getLogger(__name__)

HANDLE_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def build_capability(spec: Optional[Union[dict, object]], default_class):
    """
    Turn a {"class": ..., "kwargs": {...}} specification into an instance.
    Anything else but None is assumed to already be an instance.
    """
    if spec is None:
        return default_class()

    if isinstance(spec, dict) and "class" in spec:
        _class = spec["class"]
        if isinstance(_class, str):
            _class = importer(_class)
        return _class(**spec.get("kwargs", {}))

    return spec


class StateStore(object):
    def save(self, state: dict, stage: str) -> str:
        raise NotImplementedError()

    def load(self, handle: str, stage: str) -> dict:
        raise NotImplementedError()


class InMemoryStateStore(StateStore):
    def __init__(self, handle_length: Optional[int] = 32):
        self._db = {}
        self.handle_length = handle_length

    def save(self, state, stage):
        handle = rndstr(self.handle_length)
        self._db[handle] = (stage, copy.deepcopy(state))
        logger.debug(f"Saved state {handle} at stage {stage}")
        return handle

    def load(self, handle, stage):
        try:
            _stage, _state = self._db[handle]
        except KeyError:
            raise UnknownStateHandle(f"No saved state with handle '{handle}'")

        if _stage != stage:
            raise UnknownStateHandle(f"State '{handle}' saved at stage {_stage}, not {stage}")
        return copy.deepcopy(_state)

    def __len__(self):
        return len(self._db)


class FileStateStore(StateStore):
    """Keeps every saved state as a JSON document in a directory."""

    def __init__(self, directory: str, handle_length: Optional[int] = 32):
        self.directory = directory
        self.handle_length = handle_length
        os.makedirs(directory, exist_ok=True)

    def _file_name(self, handle):
        # handles are url-safe random strings
        if not handle or not HANDLE_PATTERN.fullmatch(handle):
            raise UnknownStateHandle(f"Not a valid handle: '{handle}'")
        return os.path.join(self.directory, f"{handle}.json")

    def save(self, state, stage):
        handle = rndstr(self.handle_length)
        with open(self._file_name(handle), "w") as fp:
            json.dump({"stage": stage, "state": state}, fp)
        logger.debug(f"Saved state {handle} at stage {stage} in {self.directory}")
        return handle

    def load(self, handle, stage):
        _file_name = self._file_name(handle)
        if not os.path.isfile(_file_name):
            raise UnknownStateHandle(f"No saved state with handle '{handle}'")

        with open(_file_name) as fp:
            _info = json.load(fp)

        if _info["stage"] != stage:
            raise UnknownStateHandle(
                f"State '{handle}' saved at stage {_info['stage']}, not {stage}")
        return _info["state"]


class Redirector(object):
    def redirect_to(self, url: str, params: dict):
        raise NotImplementedError()


class RecordingRedirector(Redirector):
    """
    Constructs the redirect location and keeps it for the host to act on.
    """

    def __init__(self):
        self.location = None

    def redirect_to(self, url, params):
        _sep = "&" if "?" in url else "?"
        self.location = f"{url}{_sep}{urlencode(params)}"
        logger.debug(f"Redirect to {self.location}")
        return self.location
