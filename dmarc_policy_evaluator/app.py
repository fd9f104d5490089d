import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO

import structlog

from dmarc_policy_evaluator.evaluator import DmarcEvaluator
from dmarc_policy_evaluator.logging import configure_logging
from dmarc_policy_evaluator.organizational_domain import OrganizationalDomainResolver
from dmarc_policy_evaluator.policy_cache import SingleFlightTxtLookup
from dmarc_policy_evaluator.policy_fetcher import DnsTxtLookup, PolicyFetcher, TxtLookup
from dmarc_policy_evaluator.serialization import (
    InvalidMessage,
    dump_verdict,
    load_evaluation_context,
)

logger = structlog.get_logger()


def main(argv: Sequence[str]):
    parser = argparse.ArgumentParser(
        description="Evaluate the DMARC policy of messages with known SPF and "
        "DKIM results. Reads one JSON object per line and writes one verdict "
        "per line."
    )
    parser.add_argument(
        "--configuration",
        type=argparse.FileType("r"),
        default=None,
        help="Configuration file (default: /etc/dmarc-policy-evaluator.json "
        "if it exists)",
    )
    parser.add_argument(
        "--debug",
        default=False,
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "messages",
        nargs="?",
        type=argparse.FileType("r"),
        default=sys.stdin,
        help="JSON lines file with message descriptions (default: stdin)",
    )
    args = parser.parse_args(argv)

    configuration = load_configuration(args.configuration)
    configure_logging(configuration.get("logging", {}), debug=args.debug)

    app = App(
        evaluator=create_evaluator(configuration),
        output=sys.stdout,
        max_concurrency=configuration.get("max_concurrency", 16),
    )
    with args.messages:
        asyncio.run(app.run(args.messages))


def run():
    main(sys.argv[1:])


def load_configuration(config_file: Optional[TextIO]) -> Dict[str, Any]:
    if config_file is None:
        try:
            # pylint: disable=consider-using-with
            config_file = open(
                "/etc/dmarc-policy-evaluator.json", "r", encoding="utf-8"
            )
        except FileNotFoundError:
            return {}
    with config_file:
        return json.load(config_file)


def create_evaluator(configuration: Dict[str, Any]) -> DmarcEvaluator:
    timeout_seconds = configuration.get("timeout_seconds", 5)
    lookup: TxtLookup = DnsTxtLookup(
        nameservers=configuration.get("nameservers"),
        lifetime_seconds=timeout_seconds,
    )
    cache_ttl_seconds = configuration.get("cache_ttl_seconds", 300)
    if cache_ttl_seconds:
        lookup = SingleFlightTxtLookup(lookup, cache_ttl_seconds)

    domain_resolver = OrganizationalDomainResolver.default()
    return DmarcEvaluator(
        PolicyFetcher(
            lookup,
            domain_resolver,
            timeout_seconds=timeout_seconds,
            retries=configuration.get("retries", 1),
        ),
        domain_resolver,
        fail_closed=configuration.get("fail_closed", False),
    )


class App:
    def __init__(
        self,
        *,
        evaluator: DmarcEvaluator,
        output: TextIO,
        max_concurrency: int = 16,
    ):
        self.evaluator = evaluator
        self.output = output
        self.max_concurrency = max_concurrency

    async def run(self, lines: Iterable[str]):
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def process_line(line: str) -> Dict[str, Any]:
            async with semaphore:
                return await self.process_line(line)

        results: List[Dict[str, Any]] = await asyncio.gather(
            *(process_line(line) for line in lines if line.strip())
        )
        for result in results:
            self.output.write(json.dumps(result) + "\n")
        self.output.flush()

    async def process_line(self, line: str) -> Dict[str, Any]:
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as err:
            await logger.awarning(
                "Skipping line that is not valid JSON.", error=str(err)
            )
            return {"error": f"Invalid JSON: {err}"}
        return await self.process_message(obj)

    async def process_message(self, obj: Any) -> Dict[str, Any]:
        try:
            ctx = load_evaluation_context(obj)
        except InvalidMessage as err:
            await logger.awarning(str(err), exc_info=err, message=obj)
            return {"error": str(err)}
        return dump_verdict(await self.evaluator.evaluate(ctx))
