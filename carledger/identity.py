"""Caller identity helpers.

A strong identity is the string a Fabric-style host derives from the caller's
X.509 certificate::

    x509::/C=US/ST=North Carolina/O=Hyperledger/OU=client/CN=org1Admin::/C=US/.../CN=ca.example.com
          └──────────────────── subject ─────────────────────┘  └────── issuer ──────┘

The display name is the subject's ``CN`` value (``org1Admin`` above). It is
weakly authenticated: the owner-name path of the authorization rules compares
it to a car's free-text ``owner``.

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from cryptography import x509

IDENTITY_SCHEME = "x509::"
SEGMENT_DELIMITER = "::"
CN_MARKER = "CN="


@dataclass(frozen=True)
class Caller:
    """The party invoking a ledger operation, as presented by the host."""
    identity: str
    org: str = ""

    @property
    def display_name(self) -> str:
        return extract_display_name(self.identity)


def extract_display_name(identity: Optional[str]) -> str:
    """Return the subject CN of an identity string, or ``""`` if there is none."""
    if not identity or not identity.startswith(IDENTITY_SCHEME):
        return ""

    segments = identity.split(SEGMENT_DELIMITER)
    if len(segments) < 2:
        return ""

    # the subject segment always starts with "/", so a CN at index 0 is not an attribute
    subject = segments[1]
    index = subject.find(CN_MARKER)
    if index > 0:
        return subject[index + len(CN_MARKER):]
    return ""


def replace_display_name(identity: str, new_name: str) -> str:
    """Swap the subject CN of ``identity`` for ``new_name``.

    Identities without an extractable name come back unchanged.
    """
    current = extract_display_name(identity)
    if not current:
        return identity
    return identity.replace(CN_MARKER + current, CN_MARKER + new_name, 1)


def _render_name(name: x509.Name) -> str:
    parts = []
    for attribute in name:
        parts.append(f"/{attribute.rfc4514_attribute_name}={attribute.value}")
    return "".join(parts)


def identity_from_certificate(cert: Union[bytes, str, x509.Certificate]) -> str:
    """Build the strong identity string for a PEM certificate.

    Subject and issuer attributes are rendered in certificate order, which puts
    the CN last for the certificates Fabric CAs issue.
    """
    if isinstance(cert, str):
        cert = cert.encode("utf-8")
    if isinstance(cert, bytes):
        cert = x509.load_pem_x509_certificate(cert)
    return f"{IDENTITY_SCHEME}{_render_name(cert.subject)}{SEGMENT_DELIMITER}{_render_name(cert.issuer)}"
