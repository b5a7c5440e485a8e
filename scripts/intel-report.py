#!/usr/bin/env python3
"""
Campaign Intel - Report Tool

Correlate the configured case and entity stores and print:
- Global report (all campaigns, global kill chain and decisions)
- Campaign report (one campaign's kill chain and decisions)
- Search results or an entity timeline
"""

import sys
import json
import logging
import argparse
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.shared.intel import IntelConfig, IntelConfigError, IntelService, create_stores
from src.shared.models.entity_record import EntityType


def load_config(args) -> IntelConfig:
    """Load config from YAML if given, else the environment, then apply flags"""
    config = IntelConfig.from_yaml(args.config) if args.config else IntelConfig.from_environment()

    overrides = {}
    if args.backend:
        overrides['store_backend'] = args.backend
    if args.cases:
        overrides['case_store_path'] = args.cases
    if args.entities:
        overrides['entity_store_path'] = args.entities
    if overrides:
        data = config.to_dict()
        data.update(overrides)
        config = IntelConfig.from_dict(data)
    return config


def main():
    parser = argparse.ArgumentParser(description='Campaign intel report (advisory only)')
    parser.add_argument('--config', help='Path to intel config YAML file')
    parser.add_argument('--backend', choices=['memory', 'file', 'dynamodb'],
                        help='Override the store backend')
    parser.add_argument('--cases', help='Case store JSON file (file backend)')
    parser.add_argument('--entities', help='Entity store JSON file (file backend)')
    parser.add_argument('--campaign', help='Campaign id to scope the report to (e.g. CMP-1)')
    parser.add_argument('--search', help='Search the index instead of printing a report')
    parser.add_argument('--scope', default='all',
                        choices=['all', 'cases', 'entities', 'campaigns', 'edges'],
                        help='Search scope')
    parser.add_argument('--limit', type=int, default=60, help='Maximum search hits')
    parser.add_argument('--timeline', metavar='TYPE:ID',
                        help='Print the case timeline for an entity (e.g. device:WS-01)')
    parser.add_argument('--log-level', help='Logging level (default from config)')

    args = parser.parse_args()

    try:
        config = load_config(args)
    except (IntelConfigError, OSError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, (args.log_level or config.log_level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    case_store, entity_store = create_stores(config)
    service = IntelService(case_store, entity_store, config)

    if args.timeline:
        type_part, _, id_part = args.timeline.partition(':')
        try:
            entity_type = EntityType(type_part)
        except ValueError:
            print(f"Unknown entity type: {type_part}", file=sys.stderr)
            sys.exit(1)
        events = service.entity_timeline(entity_type, id_part)
        output = [e.to_dict() for e in events]
    elif args.search:
        hits, totals = service.search(args.search, scope=args.scope, limit=args.limit)
        output = {'hits': [h.to_dict() for h in hits], 'totals': totals}
    else:
        output = service.report(campaign_id=args.campaign)

    print(json.dumps(output, indent=2))


if __name__ == '__main__':
    main()
