import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import dns.asyncresolver
import dns.exception
import dns.resolver
import structlog

from dmarc_policy_evaluator.dmarc_types import PublishedPolicy
from dmarc_policy_evaluator.organizational_domain import (
    OrganizationalDomainResolver,
    extract_domain,
)
from dmarc_policy_evaluator.policy_record import (
    MalformedRecord,
    parse_policy_record,
    select_policy_record,
)

logger = structlog.get_logger()

TxtLookup = Callable[[str], Awaitable[List[str]]]


class DnsLookupError(Exception):
    def __init__(self, name: str, reason: str):
        super().__init__(name, reason)
        self.name = name
        self.reason = reason

    def __str__(self):
        return f"TXT lookup for {self.name} failed: {self.reason}."


class PolicyTempError(Exception):
    def __init__(self, name: str, reason: str):
        super().__init__(name, reason)
        self.name = name
        self.reason = reason

    def __str__(self):
        return f"Temporary error fetching DMARC policy at {self.name}: {self.reason}."


class DnsTxtLookup:
    """TXT lookups through dnspython's asyncio resolver.

    Absent names and names without TXT records yield an empty list. Anything
    that prevents a definite answer raises a ``DnsLookupError``.
    """

    def __init__(
        self,
        nameservers: Optional[Sequence[str]] = None,
        lifetime_seconds: float = 5.0,
    ):
        self._resolver = dns.asyncresolver.Resolver(configure=not nameservers)
        if nameservers:
            self._resolver.nameservers = list(nameservers)
        self.lifetime_seconds = lifetime_seconds

    async def __call__(self, name: str) -> List[str]:
        try:
            answer = await self._resolver.resolve(
                name, "TXT", lifetime=self.lifetime_seconds
            )
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.exception.Timeout as err:
            raise DnsLookupError(name, "timeout") from err
        except dns.resolver.NoNameservers as err:
            raise DnsLookupError(name, "no nameserver answered (SERVFAIL)") from err
        except dns.exception.DNSException as err:
            raise DnsLookupError(name, str(err) or err.__class__.__name__) from err
        return [
            b"".join(rdata.strings).decode("utf-8", errors="replace")
            for rdata in answer
        ]


class PolicyFetcher:
    # pylint: disable=too-few-public-methods
    def __init__(
        self,
        lookup: TxtLookup,
        domain_resolver: OrganizationalDomainResolver,
        *,
        timeout_seconds: Optional[float] = 5.0,
        retries: int = 0,
    ):
        self.lookup = lookup
        self.domain_resolver = domain_resolver
        self.timeout_seconds = timeout_seconds
        self.retries = retries

    async def fetch_policy(
        self, domain: str, organizational_domain: Optional[str] = None
    ) -> PublishedPolicy:
        """Fetch the policy applying to ``domain``.

        The record at ``_dmarc.<domain>`` takes precedence. If there is none,
        the record of the organizational domain is used. Returns a policy with
        ``exists=False`` if neither publishes a usable record and raises
        ``PolicyTempError`` if DNS could not give a definite answer.
        """
        domain = extract_domain(domain)
        if organizational_domain is None:
            organizational_domain = self.domain_resolver.organizational_domain(
                domain
            )

        policy = await self._fetch_at(domain)
        if policy is None and organizational_domain != domain:
            policy = await self._fetch_at(organizational_domain)
        if policy is None:
            return PublishedPolicy.not_found(organizational_domain)
        return policy

    async def _fetch_at(self, domain: str) -> Optional[PublishedPolicy]:
        log = logger.bind(logger=self.__class__.__name__, domain=domain)
        record = select_policy_record(await self._lookup_with_retries(domain))
        if record is None:
            await log.adebug("No DMARC record published.")
            return None
        try:
            return parse_policy_record(domain, record)
        except MalformedRecord as err:
            await log.ainfo(str(err), record=record)
            return None

    async def _lookup_with_retries(self, domain: str) -> List[str]:
        name = f"_dmarc.{domain}"
        attempt = 0
        while True:
            try:
                return await self._lookup(name)
            except PolicyTempError as err:
                if attempt >= self.retries:
                    raise
                attempt += 1
                await logger.awarning(
                    "Retrying DMARC policy lookup.",
                    logger=self.__class__.__name__,
                    error=str(err),
                    attempt=attempt,
                )

    async def _lookup(self, name: str) -> List[str]:
        try:
            return await asyncio.wait_for(self.lookup(name), self.timeout_seconds)
        except asyncio.TimeoutError as err:
            raise PolicyTempError(name, "timeout") from err
        except asyncio.CancelledError as err:
            if _cancelling(asyncio.current_task()):
                raise
            raise PolicyTempError(name, "lookup cancelled") from err
        except DnsLookupError as err:
            raise PolicyTempError(name, err.reason) from err


def _cancelling(task: Optional["asyncio.Task[Any]"]) -> bool:
    # Task.cancelling() is only available from Python 3.11 on.
    cancelling = getattr(task, "cancelling", None)
    return cancelling is not None and cancelling() > 0
