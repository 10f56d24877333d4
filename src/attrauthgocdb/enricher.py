"""
Adds the roles a user holds in the Grid Configuration Database (GOCDB) to the
attributes received from the identity provider.
"""
import logging
import time
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from attrauthgocdb.configure import RegistryConfiguration
from attrauthgocdb.exception import DeadlineExceeded
from attrauthgocdb.exception import RegistryUnavailable
from attrauthgocdb.registry import RegistryClient
from attrauthgocdb.state import build_capability
from attrauthgocdb.state import InMemoryStateStore
from attrauthgocdb.state import RecordingRedirector

logger = logging.getLogger(__name__)

ERROR_MSG_KEY = "attrauthgocdb:error_msg"
ERROR_STAGE = "attrauthgocdb:error_state"
STATE_ID_PARAM = "StateId"


class AttributeEnricher(object):

    def __init__(self,
                 config: Union[dict, RegistryConfiguration],
                 http_cli: Optional[Callable] = None,
                 state_store: Optional[Union[dict, object]] = None,
                 redirector: Optional[Union[dict, object]] = None):
        """
        :param config: A RegistryConfiguration instance or the dictionary to
            build one from
        :param http_cli: Function used to make HTTP requests, same signature
            as requests.request
        :param state_store: Where to save the state when the registry can not
            be reached. An instance or a class specification.
        :param redirector: Sends the user to the error page. An instance or a
            class specification.
        """
        if not isinstance(config, RegistryConfiguration):
            config = RegistryConfiguration(config)
        self.config = config
        self.http_cli = http_cli
        self.state_store = build_capability(state_store, InMemoryStateStore)
        self.redirector = build_capability(redirector, RecordingRedirector)

    def subject_ids(self, state: Dict[str, List[str]],
                    config: Optional[RegistryConfiguration] = None) -> List[str]:
        _config = config or self.config
        _ids = []
        for name, values in state.items():
            if name not in _config.subject_attributes:
                continue
            if isinstance(values, str):
                values = [values]
            _ids.extend(values)
        return _ids

    def merge(self, state: Dict[str, List[str]], new_attributes: Dict[str, List[str]]):
        _new = {key: val for key, val in new_attributes.items() if val}
        _values = _new.get(self.config.role_attribute)
        if not _values:
            return

        _target = state.setdefault(self.config.role_attribute, [])
        if self.config.deduplicate_roles:
            for value in _values:
                if value not in _target:
                    _target.append(value)
        else:
            _target.extend(_values)

    def _enrich(self, state, config, deadline):
        subject_ids = self.subject_ids(state, config)
        if not subject_ids:
            logger.debug(f"Skipping query to GOCDB AA at {config.api_base_path}: "
                         f"No attribute(s) named {list(config.subject_attributes)} in state")
            return

        client = RegistryClient(config, http_cli=self.http_cli, deadline=deadline)
        _t0 = time.monotonic()
        for subject_id in subject_ids:
            new_attributes = client.fetch_roles(subject_id)
            logger.debug(f"enrich: new_attributes={new_attributes}")
            self.merge(state, new_attributes)
        logger.debug(f"enrich: dt={round((time.monotonic() - _t0) * 1000)}msec")

    def enrich(self, state: Dict[str, List[str]]):
        """
        Add role attributes to the state. If the registry can not be reached
        the fallback endpoints are tried in order. When they have all failed
        the state is saved and the user is redirected to the error page.

        :param state: Attribute name to attribute values
        """
        config = self.config
        deadline = None
        if config.overall_timeout:
            deadline = time.monotonic() + config.overall_timeout

        while True:
            try:
                self._enrich(state, config, deadline)
            except DeadlineExceeded as err:
                logger.error(f"Giving up on GOCDB AA at {config.api_base_path}: {err}")
                self.report_error(state, err)
            except RegistryUnavailable as err:
                if config.fallback_api_base_paths:
                    _failed = config.api_base_path
                    config = config.promote_fallback()
                    logger.warning(f"GOCDB AA at {_failed} failed ({err}), "
                                   f"trying {config.api_base_path}")
                    continue
                self.report_error(state, err)
            return

    process = enrich

    def report_error(self, state: Dict[str, List[str]], error: Exception) -> str:
        """
        Save the state together with the error message and redirect to the
        error page.

        :return: The redirect location if the redirector provides one
        """
        _snapshot = {"Attributes": state, ERROR_MSG_KEY: str(error)}
        handle = self.state_store.save(_snapshot, ERROR_STAGE)
        return self.redirector.redirect_to(self.config.error_url, {STATE_ID_PARAM: handle})

    def error_state(self, handle: str) -> dict:
        return self.state_store.load(handle, ERROR_STAGE)
