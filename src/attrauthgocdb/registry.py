import logging
import time
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from urllib.parse import quote_plus
from urllib.parse import urljoin
from xml.etree.ElementTree import ParseError

import requests
from requests.exceptions import RequestException

from attrauthgocdb.configure import RegistryConfiguration
from attrauthgocdb.exception import DeadlineExceeded
from attrauthgocdb.exception import RegistryUnavailable
from attrauthgocdb.message import parse_registry_response
from attrauthgocdb.message import RegistryPage
from attrauthgocdb.message import RoleRecord

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "API request failed"


def construct_user_query(api_base_path: str, subject_id: str) -> str:
    return f"{api_base_path}/?method=get_user&dn={quote_plus(subject_id)}"


def role_urn(record: RoleRecord, namespace: str, scope: Optional[str] = None) -> str:
    """
    Encode a role record as a URN of the form
    ``{namespace}:{primary key}:{entity}:{role}[@{scope}]``. The three record
    values are URL encoded.
    """
    _parts = [quote_plus(record.get(key, "")) for key in ["primary_key", "on_entity", "user_role"]]
    _value = ":".join([namespace] + _parts)
    if scope:
        _value += f"@{scope}"
    return _value


def error_message(response) -> str:
    """Dig out the error message the registry put in a JSON error body."""
    try:
        _info = response.json()
    except ValueError:
        return DEFAULT_ERROR_MESSAGE

    try:
        _msg = _info["Error"]["Message"]
    except (KeyError, TypeError):
        return DEFAULT_ERROR_MESSAGE

    if isinstance(_msg, str) and _msg:
        return _msg
    return DEFAULT_ERROR_MESSAGE


class RegistryClient(object):

    def __init__(self,
                 config: RegistryConfiguration,
                 http_cli: Optional[Callable] = None,
                 deadline: Optional[float] = None):
        """
        :param config: A RegistryConfiguration instance
        :param http_cli: Function used to make HTTP requests, same signature
            as requests.request
        :param deadline: time.monotonic() value after which no more requests
            are made
        """
        self.config = config
        self.http_cli = http_cli or requests.request
        self.deadline = deadline

    def _timeout(self):
        if self.deadline is None:
            return self.config.connect_timeout, None

        _remaining = self.deadline - time.monotonic()
        if _remaining <= 0:
            raise DeadlineExceeded(
                f"Overall timeout of {self.config.overall_timeout} seconds exceeded")
        return min(self.config.connect_timeout, _remaining), _remaining

    def http(self, method: str, url: str) -> RegistryPage:
        """
        Do a HTTP request and decode the response.

        :param method: HTTP method
        :param url: Target URL
        :return: A RegistryPage instance
        :raises RegistryUnavailable: On connection problems, non 200 responses
            and response bodies that can not be parsed.
        """
        logger.debug(f"http: method={method}, url={url}")
        _httpc_params = dict(self.config.httpc_params)
        _httpc_params["timeout"] = self._timeout()

        try:
            response = self.http_cli(method, url, **_httpc_params)
        except RequestException as err:
            logger.error(f"Could not connect to {url}: {err}")
            raise RegistryUnavailable(f"Could not connect to the registry: {err}") from err

        # Not even redirects are allowed here
        if response.status_code != 200:
            _msg = error_message(response)
            logger.error(f"API request failed: HTTP response code: {response.status_code}, "
                         f"error message: '{_msg}'")
            raise RegistryUnavailable(_msg, status_code=response.status_code)

        try:
            return parse_registry_response(response.content)
        except ParseError as err:
            logger.error(f"Could not parse response from {url}: {err}")
            raise RegistryUnavailable(f"Malformed registry response: {err}",
                                      status_code=response.status_code) from err

    @staticmethod
    def next_page(page: RegistryPage, url: str, visited: set) -> Optional[str]:
        if page.meta is None or page.meta.is_last_page():
            return None

        _next = page.meta.get("next")
        if not _next:
            logger.debug("More pages announced but no next link given")
            return None

        _next = urljoin(url, _next)
        if _next in visited:
            logger.warning(f"Next page link already visited: {_next}")
            return None
        return _next

    def fetch_roles(self, subject_id: str) -> Dict[str, List[str]]:
        """
        Get all the roles the registry knows for a subject, following
        pagination links.

        :param subject_id: Subject identifier, e.g. a distinguished name
        :return: Dictionary with the role attribute as key and a list of role
            URNs as value. Empty if the registry has no roles for the subject.
        """
        logger.debug(f"fetch_roles: subject_id={subject_id!r}")

        attributes = {}
        url = construct_user_query(self.config.api_base_path, subject_id)
        visited = set()
        while url:
            visited.add(url)
            page = self.http("GET", url)
            if not page.has_roles():
                break

            _values = attributes.setdefault(self.config.role_attribute, [])
            for record in page.roles:
                _values.append(role_urn(record, self.config.role_urn_namespace,
                                        self.config.role_scope))

            logger.debug(f"fetch_roles: page_meta={page.meta}")
            url = self.next_page(page, url, visited)

        return attributes
