import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from dmarc_policy_evaluator.alignment import is_aligned
from dmarc_policy_evaluator.dmarc_types import (
    AuthResult,
    Disposition,
    DkimResult,
    DmarcVerdict,
    IdentifierCheck,
    PublishedPolicy,
    SpfScope,
    VerdictResult,
)
from dmarc_policy_evaluator.organizational_domain import (
    InvalidDomain,
    OrganizationalDomainResolver,
    extract_domain,
    is_subdomain,
)
from dmarc_policy_evaluator.policy_fetcher import PolicyFetcher, PolicyTempError

logger = structlog.get_logger()

Sampler = Callable[[int], bool]


def apply_policy_at_random(pct: int) -> bool:
    return random.randrange(100) < pct


class MissingHeaderFrom(Exception):
    def __init__(self, header_from: Optional[str]):
        super().__init__(header_from)
        self.header_from = header_from

    def __str__(self):
        return f"No usable header-From domain in {self.header_from!r}."


@dataclass
class EvaluationContext:
    """Inputs for the DMARC evaluation of a single message.

    A context must only be used by one evaluation at a time. The verdict of
    the first evaluation is kept and returned for every further evaluation
    of the same context.
    """

    # pylint: disable=too-many-instance-attributes
    header_from_domain: Optional[str]
    source_ip: Optional[str] = None
    envelope_from_domain: Optional[str] = None
    envelope_to_domain: Optional[str] = None
    spf_results: List[IdentifierCheck] = field(default_factory=list)
    dkim_results: List[DkimResult] = field(default_factory=list)
    _verdict: Optional[DmarcVerdict] = field(
        default=None, init=False, repr=False, compare=False
    )

    @property
    def evaluated(self) -> bool:
        return self._verdict is not None

    @property
    def verdict(self) -> Optional[DmarcVerdict]:
        return self._verdict


class DmarcEvaluator:
    def __init__(
        self,
        policy_fetcher: PolicyFetcher,
        domain_resolver: OrganizationalDomainResolver,
        *,
        sampler: Sampler = apply_policy_at_random,
        fail_closed: bool = False,
    ):
        self.policy_fetcher = policy_fetcher
        self.domain_resolver = domain_resolver
        self.sampler = sampler
        self.fail_closed = fail_closed

    async def evaluate(self, ctx: EvaluationContext) -> DmarcVerdict:
        # pylint: disable=protected-access
        if ctx._verdict is not None:
            return ctx._verdict

        log = logger.bind(
            logger=self.__class__.__name__,
            header_from=ctx.header_from_domain,
            source_ip=ctx.source_ip,
        )
        try:
            verdict = await self._evaluate(ctx)
        except (MissingHeaderFrom, InvalidDomain) as err:
            await log.awarning("DMARC evaluation not possible.", error=str(err))
            verdict = DmarcVerdict.no_policy(error=str(err))
        except PolicyTempError as err:
            await log.awarning(
                "DMARC policy unavailable.",
                error=str(err),
                fail_closed=self.fail_closed,
            )
            verdict = DmarcVerdict.no_policy(
                result=VerdictResult.TEMPERROR
                if self.fail_closed
                else VerdictResult.NONE_VALUE,
                error=str(err),
            )
        else:
            await log.adebug(
                "DMARC evaluated.",
                result=verdict.result.value,
                disposition=verdict.disposition.value,
                spf_aligned=verdict.spf_aligned,
                dkim_aligned=verdict.dkim_aligned,
            )

        ctx._verdict = verdict
        return verdict

    async def _evaluate(self, ctx: EvaluationContext) -> DmarcVerdict:
        try:
            header_from = extract_domain(ctx.header_from_domain)
        except InvalidDomain as err:
            raise MissingHeaderFrom(ctx.header_from_domain) from err
        org_domain = self.domain_resolver.organizational_domain(header_from)

        policy = await self.policy_fetcher.fetch_policy(header_from, org_domain)
        if not policy.exists:
            return DmarcVerdict.no_policy(policy)

        dkim_aligned = any(
            is_aligned(
                dkim.signing_domain, header_from, policy.adkim, self.domain_resolver
            )
            for dkim in ctx.dkim_results
            if dkim.result == AuthResult.PASS_VALUE
        )
        spf_aligned = any(
            is_aligned(spf.domain, header_from, policy.aspf, self.domain_resolver)
            for spf in ctx.spf_results
            if spf.scope == SpfScope.MFROM and spf.result == AuthResult.PASS_VALUE
        )

        if dkim_aligned or spf_aligned:
            return DmarcVerdict(
                result=VerdictResult.PASS_VALUE,
                policy=policy,
                spf_aligned=spf_aligned,
                dkim_aligned=dkim_aligned,
            )

        disposition = self._requested_disposition(policy, header_from)
        sampled_out = (
            disposition != Disposition.NONE_VALUE
            and policy.pct < 100
            and not self.sampler(policy.pct)
        )
        return DmarcVerdict(
            result=VerdictResult.FAIL,
            disposition=Disposition.NONE_VALUE if sampled_out else disposition,
            policy=policy,
            sampled_out=sampled_out,
        )

    @staticmethod
    def _requested_disposition(
        policy: PublishedPolicy, header_from: str
    ) -> Disposition:
        if policy.sp is not None and is_subdomain(header_from, policy.domain):
            return policy.sp
        return policy.p
