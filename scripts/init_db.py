#!/usr/bin/env python3
"""Create the ai_model_configs table, optionally seeding it from a YAML registry."""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError

from ai_fallback.config.loader import load_backend_configs
from ai_fallback.db import AIModelConfig, close_db, get_session_maker, init_db


async def seed(config_path: str) -> int:
    configs = load_backend_configs(config_path)
    if not configs:
        print(f"✗ No valid backends in {config_path}", file=sys.stderr)
        return 0
    async with get_session_maker()() as session:
        async with session.begin():
            for cfg in configs:
                await session.merge(
                    AIModelConfig(
                        id=cfg.id,
                        provider=cfg.provider.value,
                        model_name=cfg.model_name,
                        api_key_secret_name=cfg.secret_ref,
                        priority=cfg.priority,
                        is_default=cfg.is_default,
                        is_active=cfg.is_active,
                        configuration=dict(cfg.extra_params),
                        use_case=",".join(cfg.use_case_tags) or None,
                        model_tier=cfg.tier.value,
                    )
                )
    return len(configs)


async def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed", help="YAML registry to copy into the table")
    args = parser.parse_args()

    print("Initializing AI model config schema...")
    try:
        await init_db()
        print("✓ Database schema created successfully")
        print("  Tables: ai_model_configs")
        if args.seed:
            count = await seed(args.seed)
            print(f"✓ Seeded {count} backend config(s) from {args.seed}")
        return 0
    except (SQLAlchemyError, OSError) as e:
        print(f"✗ Database initialization failed: {e}", file=sys.stderr)
        return 1
    finally:
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
