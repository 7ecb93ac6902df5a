"""Main entry point for the WordPress promotion agents."""
import sys
import argparse
from pathlib import Path

from agents.wp_promote import PromoteAgent
from agents.wp_restore import RestoreAgent
from core.exceptions import AgentError


DEFAULT_CONFIG = 'deploy_config.json'


def main(argv=None):
    """Main function to run agents."""
    parser = argparse.ArgumentParser(
        prog='wp-promote',
        description='Promote a WordPress staging site to production, or restore a production backup'
    )
    parser.add_argument(
        'config',
        type=str,
        nargs='?',
        default=DEFAULT_CONFIG,
        help=f'Path to the configuration file, JSON or KEY="value" shell style (default: {DEFAULT_CONFIG})'
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '-d', '--diagnose',
        action='store_true',
        help='Run read-only checks on both sites and exit'
    )
    mode.add_argument(
        '--restore',
        action='store_true',
        help='Restore production from one of the backup archives'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Show INFO messages on the console regardless of options.verbose'
    )
    parser.add_argument(
        '-y', '--yes',
        action='store_true',
        help='Answer yes to every confirmation prompt'
    )

    args = parser.parse_args(argv)

    # Validate config file exists; diagnose never fails the caller
    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: Configuration file not found: {args.config}")
        sys.exit(0 if args.diagnose else 1)

    verbose = True if args.verbose else None

    try:
        if args.restore:
            agent = RestoreAgent(str(config_path), verbose=verbose, assume_yes=args.yes)
            exit_code = agent.run()
        elif args.diagnose:
            agent = PromoteAgent(str(config_path), verbose=verbose)
            exit_code = agent.diagnose()
        else:
            agent = PromoteAgent(str(config_path), verbose=verbose, assume_yes=args.yes)
            exit_code = agent.run()
    except AgentError as e:
        print(f"Error: {e}")
        sys.exit(0 if args.diagnose else 1)

    sys.exit(exit_code)


if __name__ == '__main__':
    main()
