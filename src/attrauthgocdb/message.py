"""Typed views of the registry's get_user XML response."""
import logging
from typing import List
from typing import Optional
from xml.etree import ElementTree

from idpyoidc.message import Message
from idpyoidc.message import SINGLE_OPTIONAL_INT
from idpyoidc.message import SINGLE_OPTIONAL_STRING

logger = logging.getLogger(__name__)

USER_ELEMENT = 'EGEE_USER'
ROLE_ELEMENT = 'USER_ROLE'
META_ELEMENT = 'meta'

ROLE_FIELDS = {
    "primary_key": "PRIMARY_KEY",
    "on_entity": "ON_ENTITY",
    "user_role": "USER_ROLE",
}


class RoleRecord(Message):
    """One role a user holds on a registry entity."""
    c_param = {
        "primary_key": SINGLE_OPTIONAL_STRING,
        "on_entity": SINGLE_OPTIONAL_STRING,
        "user_role": SINGLE_OPTIONAL_STRING,
    }


class PageMeta(Message):
    """Pagination information attached to a response page."""
    c_param = {
        "count": SINGLE_OPTIONAL_INT,
        "max_page_size": SINGLE_OPTIONAL_INT,
        "next": SINGLE_OPTIONAL_STRING,
    }

    def is_last_page(self) -> bool:
        if "count" not in self or "max_page_size" not in self:
            return True
        return self["count"] < self["max_page_size"]


class RegistryPage(object):
    def __init__(self,
                 entries: int = 0,
                 roles: Optional[List[RoleRecord]] = None,
                 meta: Optional[PageMeta] = None):
        self.entries = entries
        self.roles = roles or []
        self.meta = meta

    def has_roles(self) -> bool:
        return self.entries >= 1 and len(self.roles) > 0

    def __repr__(self):
        return f'RegistryPage(entries={self.entries}, roles={len(self.roles)}, meta={self.meta})'


def _text(element, tag):
    _child = element.find(tag)
    if _child is None or _child.text is None:
        return ""
    return _child.text.strip()


def _int(element, tag):
    _val = _text(element, tag)
    if not _val:
        return None
    try:
        return int(_val)
    except ValueError:
        logger.warning(f'Non integer value for {tag}: {_val!r}')
        return None


def parse_role(element) -> RoleRecord:
    _args = {}
    for param, tag in ROLE_FIELDS.items():
        _val = _text(element, tag)
        if _val:
            _args[param] = _val
    return RoleRecord(**_args)


def parse_page_meta(root) -> Optional[PageMeta]:
    """
    Pick out the pagination information from a response.

    :param root: The response document root element
    :return: A PageMeta instance or None if the response carries no usable
        pagination information.
    """
    meta = root.find(META_ELEMENT)
    if meta is None:
        return None

    _args = {}
    for tag in ['count', 'max_page_size']:
        _val = _int(meta, tag)
        if _val is not None:
            _args[tag] = _val

    for link in meta.findall('link'):
        if link.get('rel') == 'next' and link.get('href'):
            _args['next'] = link.get('href')
            break

    if not _args:
        return None
    return PageMeta(**_args)


def parse_registry_response(text) -> RegistryPage:
    """
    Decode a get_user response body.

    Only the first user entry is looked at, that is the user the query was
    about.

    :param text: The response body
    :return: A RegistryPage instance
    :raises xml.etree.ElementTree.ParseError: if the body is not XML
    """
    root = ElementTree.fromstring(text)

    roles = []
    user = root.find(USER_ELEMENT)
    if user is not None:
        for element in user.findall(ROLE_ELEMENT):
            roles.append(parse_role(element))

    return RegistryPage(entries=len(root), roles=roles, meta=parse_page_meta(root))
