from typing import Optional

import structlog

from dmarc_policy_evaluator.dmarc_types import AlignmentMode
from dmarc_policy_evaluator.organizational_domain import (
    InvalidDomain,
    OrganizationalDomainResolver,
    extract_domain,
)

logger = structlog.get_logger()


def is_aligned(
    authenticated_domain: Optional[str],
    header_from_domain: str,
    mode: AlignmentMode,
    domain_resolver: OrganizationalDomainResolver,
) -> bool:
    """Check identifier alignment of an authenticated domain.

    In strict mode the domains have to be identical. In relaxed mode the
    organizational domain of the authenticated domain has to equal the
    organizational domain of the header-From domain.
    """
    if not authenticated_domain:
        return False
    try:
        authenticated_domain = extract_domain(authenticated_domain)
        header_from_domain = extract_domain(header_from_domain)
        if mode == AlignmentMode.STRICT:
            return authenticated_domain == header_from_domain
        return domain_resolver.organizational_domain(
            authenticated_domain
        ) == domain_resolver.organizational_domain(header_from_domain)
    except InvalidDomain as err:
        logger.debug("Domain cannot be aligned.", error=str(err))
        return False
