"""
Self-Signed Certificate Management for ReelHost
-----------------------------------------------
Generates the ECDSA P-256 certificate and key the HTTPS listener uses,
and checks that both files are present before the server starts.
"""

import ipaddress
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

CERT_FILE = "cert.pem"
KEY_FILE = "key.pem"
DEFAULT_CERT_HOSTS = "localhost,127.0.0.1,::1"
CERT_ORGANIZATION = "ReelHost"
CERT_VALIDITY = timedelta(days=365)

logger = logging.getLogger(__name__)


class CertificateMissingError(FileNotFoundError):
    """Raised when the certificate or its private key is not on disk"""


def parse_subject_alt_names(hosts: str) -> List[x509.GeneralName]:
    """
    Turn a comma separated host list into SAN entries.

    Each token is tried as an IP literal first and falls back to a DNS
    name. Blank tokens are ignored.
    """
    names: List[x509.GeneralName] = []
    for token in hosts.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(token)))
        except ValueError:
            names.append(x509.DNSName(token))
    return names


class CertificateManager:
    """Creates and locates the self-signed certificate/key pair"""

    def __init__(
        self,
        cert_path: Union[str, Path] = CERT_FILE,
        key_path: Union[str, Path] = KEY_FILE,
    ):
        self.cert_path = Path(cert_path)
        self.key_path = Path(key_path)

    @property
    def paths(self) -> Tuple[str, str]:
        """Certificate and key paths, in the order ssl.load_cert_chain takes them"""
        return str(self.cert_path), str(self.key_path)

    def check_exists(self) -> None:
        """
        Make sure both PEM files exist.

        Only presence is checked; expiry is left to the operator.

        Raises:
            CertificateMissingError: if either file is absent
        """
        missing = [p for p in (self.cert_path, self.key_path) if not p.exists()]
        if missing:
            raise CertificateMissingError(
                "TLS certificate not found "
                f"({', '.join(str(p) for p in missing)}). "
                "Please run `reelhost gen-cert` first."
            )

    def generate(self, hosts: str = DEFAULT_CERT_HOSTS) -> x509.Certificate:
        """
        Generate a new key pair and self-signed certificate and write both.

        The certificate is valid for a year from now, may sign (it is its
        own CA) and is restricted to server authentication. Existing files
        are overwritten.

        Raises:
            OSError: if either file cannot be written. A certificate that
                was already written is left in place.
        """
        private_key = ec.generate_private_key(ec.SECP256R1())

        not_before = datetime.now(timezone.utc).replace(microsecond=0)
        not_after = not_before + CERT_VALIDITY

        name = x509.Name(
            [x509.NameAttribute(NameOID.ORGANIZATION_NAME, CERT_ORGANIZATION)]
        )
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(private_key.public_key())
            .serial_number(secrets.randbelow((1 << 128) - 1) + 1)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
                critical=False,
            )
        )

        alt_names = parse_subject_alt_names(hosts)
        if alt_names:
            builder = builder.add_extension(
                x509.SubjectAlternativeName(alt_names), critical=False
            )

        certificate = builder.sign(private_key, hashes.SHA256())

        self.cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
        logger.info(f"Wrote {self.cert_path}")

        key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as key_file:
            key_file.write(key_pem)
        logger.info(f"Wrote {self.key_path}")

        return certificate
