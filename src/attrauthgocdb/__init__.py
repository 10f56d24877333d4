__version__ = '1.0.0'

from attrauthgocdb.configure import RegistryConfiguration
from attrauthgocdb.enricher import AttributeEnricher
from attrauthgocdb.registry import RegistryClient

__all__ = ["AttributeEnricher", "RegistryClient", "RegistryConfiguration"]
