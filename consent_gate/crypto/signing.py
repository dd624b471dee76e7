"""
Attachment signing for consent-gate

Signs PDF attachments and reports where the signed versions live. Signed
files follow a fixed naming rule (suffix inserted before the extension) so
an attachment that was already signed is recognized on any later run.
"""

import asyncio
import re
import shutil
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

import structlog
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7, pkcs12
from cryptography import x509
from pydantic import BaseModel, ConfigDict

from ..config import CertificateType, GateConfig, get_gate_config
from ..constants import SigningDefaults
from ..exceptions import SigningFailureError
from ..utils.validators import EmailAttachment
from .hash import secure_hash

logger = structlog.get_logger(__name__)

_PDF_EXTENSION = re.compile(r"(\.pdf)$", re.IGNORECASE)


# =============================================================================
# NAMING RULE
# =============================================================================

def is_pdf(name: str) -> bool:
    """Check whether a file name carries the PDF extension"""
    return name.lower().endswith(SigningDefaults.PDF_EXTENSION)


def is_signed(name: str, suffix: str = SigningDefaults.SIGNED_SUFFIX) -> bool:
    """Check whether a PDF name already carries the signed suffix"""
    return name.lower().endswith((suffix + SigningDefaults.PDF_EXTENSION).lower())


def signed_name(name: str, suffix: str = SigningDefaults.SIGNED_SUFFIX) -> str:
    """Insert the signed suffix before the PDF extension; signed names are unchanged"""
    if not is_pdf(name) or is_signed(name, suffix):
        return name
    return _PDF_EXTENSION.sub(lambda m: suffix + m.group(1), name)


def signed_attachment(attachment: EmailAttachment,
                      suffix: str = SigningDefaults.SIGNED_SUFFIX) -> EmailAttachment:
    """Attachment reference the signer is expected to produce"""
    return EmailAttachment(name=signed_name(attachment.name, suffix),
                           path=signed_name(attachment.path, suffix))


# =============================================================================
# SIGNER CONTRACT
# =============================================================================

class SigningConfig(BaseModel):
    """Certificate used to sign attachments"""
    model_config = ConfigDict(frozen=True)

    cert_path: Optional[str] = None
    cert_password: Optional[str] = None
    cert_type: CertificateType = CertificateType.P12
    suffix: str = SigningDefaults.SIGNED_SUFFIX

    @classmethod
    def from_config(cls, config: Optional[GateConfig] = None) -> "SigningConfig":
        config = config or get_gate_config()
        return cls(
            cert_path=config.cert_path,
            cert_password=config.cert_password,
            cert_type=config.cert_type,
            suffix=config.signed_suffix,
        )


class AttachmentSigner(Protocol):
    """Signs one attachment and returns the signed reference"""

    async def sign(self, attachment: EmailAttachment,
                   config: SigningConfig) -> EmailAttachment:
        ...


class SigningResult(BaseModel):
    """Per-attachment signing outcome"""
    original: EmailAttachment
    signed: EmailAttachment
    was_signed: bool
    reason: str


# =============================================================================
# BATCH SIGNING
# =============================================================================

async def sign_attachments(
    attachments: Optional[List[EmailAttachment]],
    signer: Optional[AttachmentSigner],
    config: SigningConfig,
    timeout: float = SigningDefaults.TIMEOUT_SECONDS,
    trace_id: Optional[str] = None
) -> List[SigningResult]:
    """
    Sign every PDF attachment that is not signed yet.

    Non-PDF and already signed attachments pass through unchanged. Each
    signer call is bounded by ``timeout``; a timeout, an error, or a result
    that does not follow the naming rule fails the whole batch.

    Raises:
        SigningFailureError: If any attachment could not be signed
    """
    if not attachments:
        logger.info("No attachments provided for signing", trace_id=trace_id)
        return []

    results: List[SigningResult] = []
    for attachment in attachments:
        results.append(await _sign_one(attachment, signer, config, timeout, trace_id))

    logger.info("PDF signing batch completed", trace_id=trace_id,
                total_attachments=len(attachments),
                signed_count=sum(1 for r in results if r.was_signed),
                skipped_count=sum(1 for r in results if not r.was_signed))
    return results


async def _sign_one(attachment: EmailAttachment, signer: Optional[AttachmentSigner],
                    config: SigningConfig, timeout: float,
                    trace_id: Optional[str]) -> SigningResult:
    if not is_pdf(attachment.name):
        logger.info("Skipping non-PDF attachment", trace_id=trace_id, name=attachment.name)
        return SigningResult(original=attachment, signed=attachment,
                             was_signed=False, reason="Not a PDF file")

    if is_signed(attachment.name, config.suffix):
        logger.info("Skipping already signed PDF", trace_id=trace_id, name=attachment.name)
        return SigningResult(original=attachment, signed=attachment,
                             was_signed=False, reason="Already signed")

    if signer is None:
        raise SigningFailureError(attachment.name, "no signer configured")

    expected = signed_attachment(attachment, config.suffix)
    logger.info("Signing PDF attachment", trace_id=trace_id,
                original_name=attachment.name, signed_name=expected.name)

    try:
        result = await asyncio.wait_for(signer.sign(attachment, config), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("PDF signing timed out", trace_id=trace_id,
                     original_name=attachment.name, timeout=timeout)
        raise SigningFailureError(attachment.name, f"timed out after {timeout}s")
    except SigningFailureError:
        raise
    except Exception as e:
        logger.error("PDF signing failed", trace_id=trace_id,
                     original_name=attachment.name, error=str(e))
        raise SigningFailureError(attachment.name, str(e)) from e

    if result != expected:
        logger.error("Signer broke the naming rule", trace_id=trace_id,
                     expected_name=expected.name, returned_name=result.name)
        raise SigningFailureError(attachment.name, "signed attachment does not follow the naming rule")

    logger.info("PDF signing successful", trace_id=trace_id,
                original_name=attachment.name, signed_name=result.name)
    return SigningResult(original=attachment, signed=result,
                         was_signed=True, reason="Successfully signed")


def ensure_all_signed(results: List[SigningResult],
                      suffix: str = SigningDefaults.SIGNED_SUFFIX) -> None:
    """
    Check that no unsigned PDF slipped through.

    Raises:
        SigningFailureError: If a PDF in the results is still unsigned
    """
    unsigned = [r.signed.name for r in results
                if is_pdf(r.signed.name) and not is_signed(r.signed.name, suffix)]
    if unsigned:
        raise SigningFailureError(reason=f"Unsigned PDFs detected: {', '.join(unsigned)}")


# =============================================================================
# PKCS#7 SIGNER
# =============================================================================

class Pkcs7AttachmentSigner:
    """
    Signs attachments with a detached CMS/PKCS#7 signature.

    The signed copy is written to the suffixed path and the DER signature
    next to it as ``<signed path>.p7s``.
    """

    def __init__(self, hash_algorithm: Optional[hashes.HashAlgorithm] = None):
        self.hash_algorithm = hash_algorithm or hashes.SHA256()

    async def sign(self, attachment: EmailAttachment,
                   config: SigningConfig) -> EmailAttachment:
        return await asyncio.to_thread(self._sign_sync, attachment, config)

    def _sign_sync(self, attachment: EmailAttachment,
                   config: SigningConfig) -> EmailAttachment:
        if not config.cert_path:
            raise SigningFailureError(attachment.name, "signing certificate not configured")

        key, certificate = self._load_credentials(config)
        target = signed_attachment(attachment, config.suffix)

        source_path = Path(attachment.path)
        data = source_path.read_bytes()

        signature = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(data)
            .add_signer(certificate, key, self.hash_algorithm)
            .sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.DetachedSignature])
        )

        signed_path = Path(target.path)
        shutil.copyfile(source_path, signed_path)
        signed_path.with_name(signed_path.name + SigningDefaults.SIGNATURE_EXTENSION).write_bytes(signature)

        logger.debug("Detached signature written", path=str(signed_path),
                     content_sha256=secure_hash(data))
        return target

    @staticmethod
    def _load_credentials(config: SigningConfig) -> Tuple[object, x509.Certificate]:
        raw = Path(config.cert_path).read_bytes()
        password = config.cert_password.encode("utf-8") if config.cert_password else None

        if config.cert_type == CertificateType.P12:
            key, certificate, _ = pkcs12.load_key_and_certificates(raw, password)
        else:
            certificate = x509.load_pem_x509_certificate(raw)
            key = serialization.load_pem_private_key(raw, password)

        if key is None or certificate is None:
            raise SigningFailureError(reason="certificate bundle lacks a key or certificate")
        return key, certificate
