import re
from email.utils import parseaddr
from typing import Optional

import structlog
from publicsuffixlist import PublicSuffixList

logger = structlog.get_logger()

_LABEL = re.compile(r"^(?!-)[a-z0-9_-]{1,63}(?<!-)$")


class InvalidDomain(Exception):
    def __init__(self, domain: Optional[str], reason: str):
        super().__init__(domain, reason)
        self.domain = domain
        self.reason = reason

    def __str__(self):
        return f"Invalid domain {self.domain!r}: {self.reason}."


def extract_domain(value: Optional[str]) -> str:
    """Return the normalized domain of an FQDN or an email address.

    Accepts plain domains (``Example.COM.``), bare addresses
    (``user@example.com``) and header style addresses
    (``User <user@example.com>``). The result is lower-case, without a
    trailing dot and IDNA-encoded.
    """
    if value is not None and not isinstance(value, str):
        raise InvalidDomain(value, "not a string")
    if value is None or not value.strip():
        raise InvalidDomain(value, "empty")
    value = value.strip()
    if "@" in value or "<" in value:
        _, address = parseaddr(value)
        value = address.rpartition("@")[2]

    domain = value.strip().rstrip(".").lower()
    if not domain:
        raise InvalidDomain(value, "no domain part")
    try:
        domain = domain.encode("idna").decode("ascii")
    except UnicodeError as err:
        raise InvalidDomain(value, "not IDNA encodable") from err

    labels = domain.split(".")
    if len(domain) > 253 or not all(_LABEL.match(label) for label in labels):
        raise InvalidDomain(value, "malformed")
    return domain


def is_subdomain(domain: str, parent: str) -> bool:
    return domain != parent and domain.endswith("." + parent)


class OrganizationalDomainResolver:
    """Derives organizational domains from public suffix boundaries."""

    def __init__(self, psl: Optional[PublicSuffixList]):
        self._psl = psl
        self._warned_missing_data = False

    @classmethod
    def default(cls) -> "OrganizationalDomainResolver":
        return cls(PublicSuffixList())

    @classmethod
    def without_boundary_data(cls) -> "OrganizationalDomainResolver":
        return cls(None)

    @property
    def has_boundary_data(self) -> bool:
        return self._psl is not None

    def organizational_domain(self, fqdn: Optional[str]) -> str:
        domain = extract_domain(fqdn)
        if self._psl is None:
            if not self._warned_missing_data:
                logger.warning(
                    "No public suffix data available, using domains unchanged "
                    "as organizational domains.",
                    logger=self.__class__.__name__,
                )
                self._warned_missing_data = True
            return domain

        org_domain = self._psl.privatesuffix(domain)
        if org_domain is None:
            raise InvalidDomain(domain, "is a public suffix")
        return org_domain
