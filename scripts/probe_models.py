#!/usr/bin/env python3
"""Probe configured AI backends and show the order the fallback chain would use.

Examples:
    python scripts/probe_models.py --config models.yaml --tier lightweight --use-case report
    python scripts/probe_models.py --id 3f2a... --record
"""

import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()


async def show_order(repository, tier: str, use_case: str | None) -> list:
    from ai_fallback.llm.tiers import resolve_configs

    configs = await resolve_configs(tier, use_case, repository=repository)
    print(f"\n=== Resolution order (tier={tier}, use_case={use_case or '-'}) ===")
    for position, cfg in enumerate(configs, start=1):
        tags = ",".join(cfg.use_case_tags) or "general"
        print(f"{position:>2}. {cfg.label:<45} tier={cfg.tier} priority={cfg.priority} tags={tags}")
    return configs


async def probe_all(configs: list) -> bool:
    from ai_fallback.llm.probe import probe_config

    print("\n=== Probing backends ===")
    all_ok = True
    for cfg in configs:
        result = await probe_config(cfg)
        mark = "✓" if result.success else "✗"
        print(f"{mark} {cfg.label}: {result.message}")
        all_ok = all_ok and result.success
    return all_ok


async def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--config", help="YAML backend registry (default: database)")
    parser.add_argument("--tier", default="normal", choices=["lightweight", "normal"])
    parser.add_argument("--use-case", default=None)
    parser.add_argument("--id", dest="config_id", help="Probe a single config from the database")
    parser.add_argument(
        "--record", action="store_true", help="Store the probe result on the database row"
    )
    parser.add_argument("--no-probe", action="store_true", help="Only print the resolution order")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING, format="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    from ai_fallback.config.repository import SqlConfigRepository, YamlConfigRepository
    from ai_fallback.exceptions import ConfigUnavailable

    if args.config_id:
        from ai_fallback.db.engine import get_session_maker
        from ai_fallback.llm.probe import probe_and_record, probe_config

        sql_repository = SqlConfigRepository(get_session_maker())
        try:
            if args.record:
                result = await probe_and_record(args.config_id, sql_repository)
            else:
                cfg = await sql_repository.get_config(args.config_id)
                if cfg is None:
                    print(f"✗ Configuration not found: {args.config_id}")
                    return 1
                result = await probe_config(cfg)
        except ConfigUnavailable as e:
            print(f"✗ {e}")
            return 1
        print(f"{'✓' if result.success else '✗'} {result.message}")
        return 0 if result.success else 1

    if args.config:
        repository = YamlConfigRepository(args.config)
    else:
        from ai_fallback.db.engine import get_session_maker

        repository = SqlConfigRepository(get_session_maker())

    try:
        configs = await show_order(repository, args.tier, args.use_case)
    except ConfigUnavailable as e:
        print(f"✗ {e}")
        return 1

    if args.no_probe:
        return 0
    return 0 if await probe_all(configs) else 1


async def _run() -> int:
    from ai_fallback.db.engine import close_db

    try:
        return await main()
    finally:
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(_run()))
