"""
Verified extraction of content from content addressable archives (CAR). An untrusted transport
supplies the archive; the package releases only those bytes that hash to the identifiers which the
requested CID path resolves to.

The package exports the following entry points:

1. `carverify.extract.extract_verified_content`: an iterator over the verified content
2. `carverify.extract.extract_verified_buffer`: the verified content as a single buffer
3. `carverify.extract.validate_archive`: verify every block of an archive

All failures are reported as a `carverify.errors.VerificationError`.
"""
from __future__ import annotations

__version__ = '0.4.2'
__distribution__ = 'carverify'

from carverify.errors import VerificationError
from carverify.extract import (
    VerifiedExtractor,
    extract_verified_buffer,
    extract_verified_content,
    validate_archive,
)
from carverify.lib.cid import CID, PathRequest

__all__ = [
    'CID',
    'PathRequest',
    'VerificationError',
    'VerifiedExtractor',
    'extract_verified_buffer',
    'extract_verified_content',
    'validate_archive',
]
