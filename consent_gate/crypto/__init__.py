"""
Cryptographic utilities for consent-gate
Content fingerprints and attachment signing
"""

from .hash import (
    canonicalize, canonical_json, fingerprint, is_fingerprint, secure_hash,
)
from .signing import (
    AttachmentSigner, Pkcs7AttachmentSigner, SigningConfig, SigningResult,
    ensure_all_signed, is_pdf, is_signed, sign_attachments, signed_attachment, signed_name,
)

__all__ = [
    "canonicalize",
    "canonical_json",
    "fingerprint",
    "is_fingerprint",
    "secure_hash",
    "AttachmentSigner",
    "Pkcs7AttachmentSigner",
    "SigningConfig",
    "SigningResult",
    "ensure_all_signed",
    "is_pdf",
    "is_signed",
    "sign_attachments",
    "signed_attachment",
    "signed_name",
]
