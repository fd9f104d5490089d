from typing import Any, Dict, List, Optional

from dataclasses_serialization.json import JSONSerializer
from dataclasses_serialization.serializer_base import DeserializationError

from dmarc_policy_evaluator.dmarc_types import (
    AuthResult,
    Disposition,
    DkimResult,
    DmarcVerdict,
    IdentifierCheck,
    SpfScope,
    VerdictResult,
)
from dmarc_policy_evaluator.evaluator import EvaluationContext


class InvalidMessage(Exception):
    def __init__(self, obj: Any, reason: str):
        super().__init__(obj, reason)
        self.obj = obj
        self.reason = reason

    def __str__(self):
        return f"Cannot evaluate message description: {self.reason}."


# false positive, pylint: disable=no-value-for-parameter
@JSONSerializer.register_serializer(Disposition)
def disposition_serializer(disposition: Disposition) -> str:
    return disposition.value


@JSONSerializer.register_serializer(VerdictResult)
def verdict_result_serializer(result: VerdictResult) -> str:
    return result.value


@JSONSerializer.register_serializer(DmarcVerdict)
def dmarc_verdict_serializer(verdict: DmarcVerdict) -> Dict[str, Any]:
    return JSONSerializer.serialize(
        {
            "result": verdict.result,
            "disposition": verdict.disposition,
            "aligned_mechanisms": verdict.aligned_mechanisms,
            "sampled_out": verdict.sampled_out,
            "policy_domain": verdict.policy.domain if verdict.policy else None,
            "published_policy_raw": verdict.published_policy_raw,
            "error": verdict.error,
        }
    )


def _string_field(obj: Dict[str, Any], key: str) -> Optional[str]:
    value = obj.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidMessage(obj, f"{key} must be a string")
    return value


def _list_field(obj: Dict[str, Any], key: str) -> List[Any]:
    value = obj.get(key, [])
    if not isinstance(value, list):
        raise InvalidMessage(obj, f"{key} must be a list")
    return value


@JSONSerializer.register_deserializer(AuthResult)
def auth_result_deserializer(_cls, obj: str) -> AuthResult:
    return AuthResult(obj.lower())


@JSONSerializer.register_deserializer(SpfScope)
def spf_scope_deserializer(_cls, obj: str) -> SpfScope:
    return SpfScope(obj.lower())


@JSONSerializer.register_deserializer(IdentifierCheck)
def spf_check_deserializer(_cls, obj: Dict[str, Any]) -> IdentifierCheck:
    return IdentifierCheck.spf(
        domain=_string_field(obj, "domain") or "",
        result=JSONSerializer.deserialize(AuthResult, obj["result"]),
        scope=JSONSerializer.deserialize(SpfScope, obj.get("scope", "mfrom")),
    )


@JSONSerializer.register_deserializer(DkimResult)
def dkim_result_deserializer(_cls, obj: Dict[str, Any]) -> DkimResult:
    signing_domain = _string_field(obj, "signing_domain")
    if signing_domain is None:
        raise InvalidMessage(obj, "missing signing_domain")
    return DkimResult(
        signing_domain=signing_domain,
        result=JSONSerializer.deserialize(AuthResult, obj["result"]),
    )


@JSONSerializer.register_deserializer(EvaluationContext)
def evaluation_context_deserializer(_cls, obj: Dict[str, Any]) -> EvaluationContext:
    return EvaluationContext(
        header_from_domain=_string_field(obj, "header_from_domain"),
        source_ip=_string_field(obj, "source_ip"),
        envelope_from_domain=_string_field(obj, "envelope_from_domain"),
        envelope_to_domain=_string_field(obj, "envelope_to_domain"),
        spf_results=[
            JSONSerializer.deserialize(IdentifierCheck, spf)
            for spf in _list_field(obj, "spf_results")
        ],
        dkim_results=[
            JSONSerializer.deserialize(DkimResult, dkim)
            for dkim in _list_field(obj, "dkim_results")
        ],
    )


def load_evaluation_context(obj: Any) -> EvaluationContext:
    if not isinstance(obj, dict):
        raise InvalidMessage(obj, "expected a JSON object")
    try:
        return JSONSerializer.deserialize(EvaluationContext, obj)
    except (DeserializationError, AttributeError, KeyError, TypeError) as err:
        raise InvalidMessage(obj, str(err) or err.__class__.__name__) from err
    except ValueError as err:
        raise InvalidMessage(obj, str(err)) from err


def dump_verdict(verdict: DmarcVerdict) -> Dict[str, Any]:
    return JSONSerializer.serialize(verdict)
