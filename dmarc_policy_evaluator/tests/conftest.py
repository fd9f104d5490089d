import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import pytest

from dmarc_policy_evaluator.evaluator import DmarcEvaluator, Sampler
from dmarc_policy_evaluator.logging import configure_logging
from dmarc_policy_evaluator.organizational_domain import OrganizationalDomainResolver
from dmarc_policy_evaluator.policy_fetcher import (
    DnsLookupError,
    PolicyFetcher,
    TxtLookup,
)


@dataclass
class FakeTxtLookup:
    """In-memory TXT records keyed by query name.

    Values may be a list of TXT strings or an exception to raise. Unknown
    names answer like NXDOMAIN with an empty list.
    """

    records: Dict[str, Union[Sequence[str], Exception]] = field(
        default_factory=dict
    )
    delay_seconds: float = 0
    calls: Counter = field(default_factory=Counter)

    async def __call__(self, name: str) -> List[str]:
        self.calls[name] += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        answer = self.records.get(name, [])
        if isinstance(answer, Exception):
            raise answer
        return list(answer)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


def servfail(name: str) -> DnsLookupError:
    return DnsLookupError(name, "no nameserver answered (SERVFAIL)")


@pytest.fixture(name="captured_logs")
def fixture_captured_logs(caplog):
    configure_logging({}, debug=True)
    logging.getLogger().addHandler(caplog.handler)
    return caplog


@pytest.fixture(name="domain_resolver", scope="session")
def fixture_domain_resolver() -> OrganizationalDomainResolver:
    return OrganizationalDomainResolver.default()


@pytest.fixture(name="txt_lookup")
def fixture_txt_lookup() -> FakeTxtLookup:
    return FakeTxtLookup()


def create_evaluator(
    txt_lookup: TxtLookup,
    domain_resolver: OrganizationalDomainResolver,
    *,
    sampler: Optional[Sampler] = None,
    fail_closed: bool = False,
    retries: int = 0,
    timeout_seconds: Optional[float] = 1,
) -> DmarcEvaluator:
    kwargs = {} if sampler is None else {"sampler": sampler}
    return DmarcEvaluator(
        PolicyFetcher(
            txt_lookup,
            domain_resolver,
            timeout_seconds=timeout_seconds,
            retries=retries,
        ),
        domain_resolver,
        fail_closed=fail_closed,
        **kwargs,
    )
