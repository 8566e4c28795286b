"""cspgen — Content-Security-Policy generation from a page's observed resources.

    from cspgen import GeneratorOptions, SecureCSPGenerator

    header = await SecureCSPGenerator("https://example.com", GeneratorOptions()).generate()
"""

from cspgen.config import GeneratorOptions, TransportOptions
from cspgen.generator import SecureCSPGenerator
from cspgen.models.errors import (
    BodyTooLargeError,
    ConfigurationError,
    CSPGeneratorError,
    DnsLookupError,
    FetchError,
    FetchTimeoutError,
    RedirectNotAllowedError,
)
from cspgen.models.policy import Directive, GeneratorState

__version__ = "1.0.0"

__all__ = [
    "BodyTooLargeError",
    "ConfigurationError",
    "CSPGeneratorError",
    "Directive",
    "DnsLookupError",
    "FetchError",
    "FetchTimeoutError",
    "GeneratorOptions",
    "GeneratorState",
    "RedirectNotAllowedError",
    "SecureCSPGenerator",
    "TransportOptions",
]
