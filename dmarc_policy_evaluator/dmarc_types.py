from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class AuthResult(Enum):
    NONE_VALUE = "none"
    PASS_VALUE = "pass"
    FAIL = "fail"
    NEUTRAL = "neutral"
    SOFTFAIL = "softfail"
    POLICY = "policy"
    TEMPERROR = "temperror"
    PERMERROR = "permerror"


class Mechanism(Enum):
    SPF = "spf"
    DKIM = "dkim"


class SpfScope(Enum):
    MFROM = "mfrom"
    HELO = "helo"


class AlignmentMode(Enum):
    RELAXED = "r"
    STRICT = "s"


class Disposition(Enum):
    NONE_VALUE = "none"
    QUARANTINE = "quarantine"
    REJECT = "reject"


class VerdictResult(Enum):
    PASS_VALUE = "pass"
    FAIL = "fail"
    NONE_VALUE = "none"
    TEMPERROR = "temperror"


@dataclass(frozen=True)
class IdentifierCheck:
    mechanism: Mechanism
    domain: str
    result: AuthResult
    scope: Optional[SpfScope] = None

    @classmethod
    def spf(
        cls, domain: str, result: AuthResult, scope: SpfScope = SpfScope.MFROM
    ) -> "IdentifierCheck":
        return cls(Mechanism.SPF, domain, result, scope)


@dataclass(frozen=True)
class DkimResult:
    signing_domain: str
    result: AuthResult

    def to_identifier_check(self) -> IdentifierCheck:
        return IdentifierCheck(Mechanism.DKIM, self.signing_domain, self.result)


@dataclass(frozen=True)
class PublishedPolicy:
    """A DMARC policy record as published in DNS.

    ``domain`` is the domain whose ``_dmarc`` record provided the policy.
    Instances with ``exists=False`` stand for "no usable record published";
    their tag values are the defaults and carry no enforcement meaning.
    """

    domain: str
    p: Disposition = Disposition.NONE_VALUE
    sp: Optional[Disposition] = None
    adkim: AlignmentMode = AlignmentMode.RELAXED
    aspf: AlignmentMode = AlignmentMode.RELAXED
    pct: int = 100
    rua: Tuple[str, ...] = ()
    ruf: Tuple[str, ...] = ()
    fo: str = "0"
    rf: str = "afrf"
    ri: int = 86400
    raw: Optional[str] = None
    exists: bool = True

    @classmethod
    def not_found(cls, domain: str) -> "PublishedPolicy":
        return cls(domain=domain, exists=False)


@dataclass(frozen=True)
class DmarcVerdict:
    """Outcome of a DMARC evaluation for one message.

    ``disposition`` only carries enforcement meaning when ``result`` is
    ``VerdictResult.FAIL``. Evaluations that did not find a policy, hit a
    temporary DNS error or could not be carried out at all have
    ``Disposition.NONE_VALUE``.
    """

    result: VerdictResult
    disposition: Disposition = Disposition.NONE_VALUE
    policy: Optional[PublishedPolicy] = None
    spf_aligned: bool = False
    dkim_aligned: bool = False
    sampled_out: bool = False
    error: Optional[str] = None

    @classmethod
    def no_policy(
        cls,
        policy: Optional[PublishedPolicy] = None,
        *,
        result: VerdictResult = VerdictResult.NONE_VALUE,
        error: Optional[str] = None
    ) -> "DmarcVerdict":
        return cls(result=result, policy=policy, error=error)

    @property
    def aligned_mechanisms(self) -> Dict[str, bool]:
        return {"spf": self.spf_aligned, "dkim": self.dkim_aligned}

    @property
    def published_policy_raw(self) -> Optional[str]:
        return self.policy.raw if self.policy else None

    def hits(self, disposition: Disposition) -> bool:
        return self.result == VerdictResult.FAIL and self.disposition == disposition
