import copy
import logging
import os
from typing import Dict
from typing import List
from typing import Optional

from idpyoidc.configure import Base
from idpyoidc.configure import create_from_config_file

from attrauthgocdb.exception import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_PARAMETERS = [
    'api_base_path',
    'subject_attributes',
    'role_attribute',
    'role_urn_namespace',
]

OPTIONAL_PARAMETERS = {
    'api_base_path.slaves': [],
    'role_scope': None,
    'ssl_client_cert': None,
    'ssl_verify_peer': True,
    'connect_timeout': 8,
    'overall_timeout': None,
    'error_url': 'attrauthgocdb/user_in_form',
    'deduplicate_roles': False,
}

DEFAULT_FILE_ATTRIBUTE_NAMES = ['ssl_client_cert']


def _check_timeout(name, value):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(f'{name} must be a positive number, got {value!r}')
    return value


class RegistryConfiguration(Base):
    """
    Static parameters for querying the registry.

    Example configuration::

        {
            'api_base_path': 'https://gocdb.aa.org/api',
            'api_base_path.slaves': ['https://gocdb.aa.org/slave/api'],
            'subject_attributes': ['distinguishedName'],
            'role_attribute': 'eduPersonEntitlement',
            'role_urn_namespace': 'urn:mace:aa.org',
            'role_scope': 'vo.org',
            'ssl_client_cert': 'client_example_org.chained.pem',
            'ssl_verify_peer': True
        }

    Instances are write-once. Failing over to a fallback endpoint produces a
    new instance, see :py:meth:`promote_fallback`.
    """

    def __init__(self,
                 conf: Dict,
                 base_path: Optional[str] = '',
                 entity_conf: Optional[List[dict]] = None,
                 file_attributes: Optional[List[str]] = None,
                 domain: Optional[str] = "",
                 port: Optional[int] = 0,
                 dir_attributes: Optional[List[str]] = None,
                 ):
        for param in REQUIRED_PARAMETERS:
            if param not in conf:
                raise ConfigurationError(f'Missing required configuration parameter: {param}')
            if not conf[param]:
                raise ConfigurationError(f'Empty configuration parameter: {param}')

        # None valued entries would trip the file path handling
        _conf = {k: copy.deepcopy(v) for k, v in conf.items() if v is not None}

        file_attributes = file_attributes or DEFAULT_FILE_ATTRIBUTE_NAMES
        Base.__init__(self, _conf, base_path=base_path, file_attributes=file_attributes,
                      dir_attributes=dir_attributes, domain=domain, port=port)

        _conf = self.conf

        self.api_base_path = _conf['api_base_path'].rstrip('/')
        _slaves = _conf.get('api_base_path.slaves', OPTIONAL_PARAMETERS['api_base_path.slaves'])
        if isinstance(_slaves, str):
            _slaves = [_slaves]
        self.fallback_api_base_paths = tuple(s.rstrip('/') for s in _slaves if s)

        _subject_attributes = _conf['subject_attributes']
        if isinstance(_subject_attributes, str):
            _subject_attributes = [_subject_attributes]
        self.subject_attributes = tuple(_subject_attributes)

        self.role_attribute = _conf['role_attribute']
        self.role_urn_namespace = _conf['role_urn_namespace']

        for param in ['role_scope', 'error_url', 'deduplicate_roles']:
            setattr(self, param, _conf.get(param, OPTIONAL_PARAMETERS[param]))

        _cert = _conf.get('ssl_client_cert')
        if _cert and base_path and not os.path.isabs(_cert):
            _cert = os.path.join(base_path, _cert)
        self.ssl_client_cert = _cert

        self.ssl_verify_peer = bool(_conf.get('ssl_verify_peer',
                                              OPTIONAL_PARAMETERS['ssl_verify_peer']))
        self.connect_timeout = _check_timeout(
            'connect_timeout', _conf.get('connect_timeout', OPTIONAL_PARAMETERS['connect_timeout']))
        self.overall_timeout = _check_timeout('overall_timeout', _conf.get('overall_timeout'))

        _httpc_params = {"verify": self.ssl_verify_peer, "allow_redirects": False}
        if self.ssl_client_cert:
            if not os.path.isfile(self.ssl_client_cert):
                logger.warning(f'No such client certificate file: {self.ssl_client_cert}')
            _httpc_params["cert"] = self.ssl_client_cert
        self.httpc_params = _httpc_params

    def promote_fallback(self) -> 'RegistryConfiguration':
        """
        Create a configuration where the first fallback endpoint has become the
        primary one and the rest are the remaining fallbacks.

        The new instance is built without a base_path. File references in
        self.conf may still be relative, so the resolved ssl_client_cert is
        carried over explicitly.

        :return: A new RegistryConfiguration instance
        """
        if not self.fallback_api_base_paths:
            raise ConfigurationError('No fallback API base path left')

        _conf = copy.deepcopy(self.conf)
        _conf['api_base_path'] = self.fallback_api_base_paths[0]
        _conf['api_base_path.slaves'] = list(self.fallback_api_base_paths[1:])
        if self.ssl_client_cert:
            # already resolved against base_path
            _conf['ssl_client_cert'] = self.ssl_client_cert
        return self.__class__(_conf)


def load_configuration(filename: str, base_path: Optional[str] = None) -> RegistryConfiguration:
    """
    Read a configuration file (JSON, YAML or Python module with a CONFIG
    attribute). Relative file references are resolved against the directory
    the file lives in unless base_path says otherwise.
    """
    if base_path is None:
        base_path = os.path.dirname(os.path.abspath(filename))
    return create_from_config_file(RegistryConfiguration, filename=filename,
                                   base_path=base_path)
