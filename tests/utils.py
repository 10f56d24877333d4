from typing import List
from typing import Optional
from typing import Tuple

import requests

USER_ROLE = ("<USER_ROLE>"
             "<USER_ROLE>{role}</USER_ROLE>"
             "<ON_ENTITY>{entity}</ON_ENTITY>"
             "<ON_ENTITY_TYPE>site</ON_ENTITY_TYPE>"
             "<PRIMARY_KEY>{key}</PRIMARY_KEY>"
             "</USER_ROLE>")


def user_response(roles: List[Tuple[str, str, str]],
                  count: Optional[int] = None,
                  max_page_size: Optional[int] = None,
                  next_url: Optional[str] = None) -> str:
    """
    Build a get_user response.

    :param roles: (primary key, entity, role) tuples
    """
    _roles = "".join([USER_ROLE.format(key=k, entity=e, role=r) for k, e, r in roles])
    _meta = ""
    if count is not None or max_page_size is not None or next_url:
        _meta = "<meta>"
        if count is not None:
            _meta += f"<count>{count}</count>"
        if max_page_size is not None:
            _meta += f"<max_page_size>{max_page_size}</max_page_size>"
        _meta += '<link rel="self" href="https://gocdb.example.org/self"/>'
        if next_url:
            _meta += f'<link rel="next" href="{next_url}"/>'
        _meta += "</meta>"

    return ('<?xml version="1.0" encoding="UTF-8"?>'
            "<results>"
            '<EGEE_USER ID="1" PRIMARY_KEY="1G0">'
            "<FORENAME>Alice</FORENAME><SURNAME>Smith</SURNAME>"
            f"{_roles}"
            "</EGEE_USER>"
            f"{_meta}"
            "</results>")


NO_USER = '<?xml version="1.0" encoding="UTF-8"?><results/>'


class RecordingHTTPClient(object):
    """Passes requests on to requests.request and remembers the arguments."""

    def __init__(self):
        self.calls = []

    def __call__(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return requests.request(method, url, **kwargs)
