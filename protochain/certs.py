import datetime
import ipaddress
from pathlib import Path
from typing import List, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509 import ExtendedKeyUsageOID, NameOID

from protochain import exceptions

CERT_EXPIRY = datetime.timedelta(days=365)


class TrustRoot:
    """
    The single certificate authority every hop trusts when acting as a TLS client.

    Instances are immutable and safe to share between concurrent requests.
    """
    _cert: x509.Certificate

    def __init__(self, cert: x509.Certificate):
        assert isinstance(cert, x509.Certificate)
        self._cert = cert

    def __eq__(self, other):
        return isinstance(other, TrustRoot) and self.fingerprint() == other.fingerprint()

    def __hash__(self):
        return hash(self.fingerprint())

    def __repr__(self):
        return f"<TrustRoot(cn={self.cn!r})>"

    @classmethod
    def from_pem(cls, data: Optional[bytes]) -> "TrustRoot":
        if not data:
            raise exceptions.ConfigurationError("No trust root provided.")
        try:
            cert = x509.load_pem_x509_certificate(data)
        except ValueError as e:
            raise exceptions.ConfigurationError(f"Malformed trust root: {e}") from e
        return cls(cert)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "TrustRoot":
        try:
            data = Path(path).expanduser().read_bytes()
        except OSError as e:
            raise exceptions.ConfigurationError(f"Cannot read trust root {path}: {e}") from e
        return cls.from_pem(data)

    def to_pem(self) -> bytes:
        return self._cert.public_bytes(serialization.Encoding.PEM)

    def fingerprint(self) -> bytes:
        return self._cert.fingerprint(hashes.SHA256())

    @property
    def cn(self) -> Optional[str]:
        attrs = self._cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if attrs:
            return attrs[0].value
        return None

    @property
    def altnames(self) -> List[str]:
        """
        Get all SubjectAlternativeName DNS altnames and IP addresses.
        """
        try:
            ext = self._cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        except x509.ExtensionNotFound:
            return []
        return (
            ext.get_values_for_type(x509.DNSName)
            +
            [str(x) for x in ext.get_values_for_type(x509.IPAddress)]
        )


def create_self_signed(
    cn: str,
    sans: List[str],
    key_size: int = 2048,
) -> Tuple[rsa.RSAPrivateKey, x509.Certificate]:
    """
    Generates a self-issued certificate that can both serve TLS and be the
    sole trust root of a TLS client.

    sans: hostnames and IP addresses the certificate is valid for.
    """
    now = datetime.datetime.now(datetime.timezone.utc)

    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, cn),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "protochain"),
    ])

    ss: List[x509.GeneralName] = []
    for x in sans:
        try:
            ip = ipaddress.ip_address(x)
        except ValueError:
            ss.append(x509.DNSName(x))
        else:
            ss.append(x509.IPAddress(ip))

    builder = x509.CertificateBuilder()
    builder = builder.serial_number(x509.random_serial_number())
    builder = builder.subject_name(name)
    builder = builder.issuer_name(name)
    builder = builder.not_valid_before(now - datetime.timedelta(days=2))
    builder = builder.not_valid_after(now + CERT_EXPIRY)
    builder = builder.public_key(private_key.public_key())
    builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
    builder = builder.add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
    builder = builder.add_extension(
        x509.KeyUsage(
            digital_signature=True,
            content_commitment=False,
            key_encipherment=True,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=True,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False,
        ), critical=True)
    builder = builder.add_extension(x509.SubjectAlternativeName(ss), critical=False)
    builder = builder.add_extension(x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()), critical=False)
    cert = builder.sign(private_key=private_key, algorithm=hashes.SHA256())
    return private_key, cert


def write_pem_pair(
    private_key: rsa.RSAPrivateKey,
    cert: x509.Certificate,
    certfile: Union[str, Path],
    keyfile: Union[str, Path],
) -> None:
    keyfile = Path(keyfile).expanduser()
    certfile = Path(certfile).expanduser()
    keyfile.write_bytes(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    keyfile.chmod(0o600)
    certfile.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
