from __future__ import annotations

from cryptography import x509

from .models import CertInfo

_DT_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def read_certificate(data: bytes) -> CertInfo:
    """Summarize an X.509 certificate (DER as stored in userCertificate, or PEM).

    Raises ValueError when the bytes are not a certificate.
    """
    if not data:
        raise ValueError("Empty certificate value.")
    if data.lstrip().startswith(b"-----BEGIN"):
        cert = x509.load_pem_x509_certificate(data)
    else:
        cert = x509.load_der_x509_certificate(data)

    return CertInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        not_before=cert.not_valid_before_utc.strftime(_DT_FORMAT),
        not_after=cert.not_valid_after_utc.strftime(_DT_FORMAT),
        serial_number=format(cert.serial_number, "X"),
    )
