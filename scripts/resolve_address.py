# Script that resolves address fragments against the configured providers
from argparse import ArgumentParser
import asyncio
import json
import logging
import sys

from hybrid_address_search.config import EngineConfig
from hybrid_address_search.engine import AddressSearchEngine
from hybrid_address_search.errors import ConfigValidationError


async def main(queries, as_json=False, limit=10):
    async with AddressSearchEngine(EngineConfig.from_env()) as engine:
        for query in queries:
            result = await engine.resolve(query)
            if as_json:
                print(json.dumps({
                    "query": result.query,
                    "classification": result.classification.category.value,
                    "status": result.status.value,
                    "providers": list(result.providers),
                    "candidates": [c.to_dict() for c in result.candidates[:limit]],
                }, ensure_ascii=False))
                continue

            print(f'{result.query} [{result.classification.description}] -> {result.status.value}')
            for candidate in result.candidates[:limit]:
                print(f'  {candidate.label()} ({candidate.source})')
            for error in result.errors:
                print(f'  ! {error.provider}: {error.error_label} {error.api_message or ""}')


if __name__ == '__main__':
    parser = ArgumentParser()
    parser.add_argument('queries', nargs='+')
    parser.add_argument('--json', '-j', action='store_true')
    parser.add_argument('--limit', '-n', type=int, default=10)
    parser.add_argument('--verbose', '-v', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        asyncio.run(main(args.queries, as_json=args.json, limit=args.limit))
    except ConfigValidationError as e:
        print(e)
        print(e.summary())
        sys.exit(2)
