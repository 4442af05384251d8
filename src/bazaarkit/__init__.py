from ._version import __version__
from .bazaar import Bazaar
from .client import (
    BazaarClient,
    BazaarError,
    BazaarHTTPError,
    DescriptorParseError,
    InstallError,
    NetworkError,
    PackageNotFoundError,
)
from .config import Config, load_config
from .models import LocalizedField, Package, StageIndex, StagePackage, StageRepo

__all__ = [
    "Bazaar",
    "BazaarClient",
    "BazaarError",
    "BazaarHTTPError",
    "Config",
    "DescriptorParseError",
    "InstallError",
    "LocalizedField",
    "NetworkError",
    "Package",
    "PackageNotFoundError",
    "StageIndex",
    "StagePackage",
    "StageRepo",
    "__version__",
    "load_config",
]
