"""
agentgate CLI entry point.

Usage:
    agentgate check "<command>"             Evaluate a command
    agentgate check "<command>" --interactive
                                            Ask for approval when needed
    agentgate rules list                    List active rules
    agentgate rules add NAME ARGV... --decision allow
                                            Add a user rule
    agentgate rules remove RULE_ID          Remove a user rule
    agentgate config show                   Show current configuration
    agentgate config init                   Write a default config file

Exit codes for check: 0 allow, 1 deny, 2 approval required.
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Optional

from agentgate import __version__
from agentgate.config.loader import load_config
from agentgate.config.schemas import AgentGateConfig, ApprovalPolicy
from agentgate.security.approval import AutoApprover, TerminalApprover
from agentgate.security.errors import GateError
from agentgate.security.manager import PermissionManager, PermissionResult
from agentgate.security.rules import Literal, PermissionDecision
from agentgate.telemetry.logger import setup_logging_from_config

EXIT_CODES = {
    PermissionDecision.ALLOW: 0,
    PermissionDecision.DENY: 1,
    PermissionDecision.PROMPT: 2,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="agentgate",
        description="Permission gate for commands proposed by autonomous agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  agentgate check "git status"              Evaluate a command
  agentgate check "npm install" --network   Allow network access
  agentgate rules add "Allow make" make --decision allow
  agentgate config show                     Display current settings
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="Path to custom configuration file",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override log level",
    )

    parser.add_argument(
        "--rules-file",
        type=Path,
        metavar="PATH",
        help="Override the persisted rules file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check subcommand
    check_parser = subparsers.add_parser("check", help="Evaluate a command")
    check_parser.add_argument("shell_command", help="Command to evaluate (quote it)")
    check_parser.add_argument("--cwd", default=None, help="Working directory (default: current)")
    check_parser.add_argument(
        "--policy",
        choices=[p.value for p in ApprovalPolicy],
        default=None,
        help="Override the approval policy",
    )
    check_parser.add_argument(
        "--network",
        action="store_true",
        help="Allow network access without prompting",
    )
    check_parser.add_argument(
        "--workspace",
        action="append",
        default=[],
        metavar="PATH",
        help="Trust a workspace root (repeatable)",
    )
    mode = check_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--interactive",
        action="store_true",
        help="Ask for approval on the terminal when needed",
    )
    mode.add_argument(
        "--auto-deny",
        action="store_true",
        help="Deny anything that needs approval",
    )
    check_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # rules subcommand
    rules_parser = subparsers.add_parser("rules", help="Rule management")
    rules_subparsers = rules_parser.add_subparsers(dest="rules_command")
    rules_list = rules_subparsers.add_parser("list", help="List active rules")
    rules_list.add_argument("--json", action="store_true", help="Print rules as JSON")
    rules_add = rules_subparsers.add_parser("add", help="Add a user rule")
    rules_add.add_argument("name", help="Rule name")
    rules_add.add_argument("argv", nargs="+", help="Command prefix (first three tokens are used)")
    rules_add.add_argument(
        "--decision",
        choices=[d.value for d in PermissionDecision],
        required=True,
        help="Decision applied when the rule matches",
    )
    rules_remove = rules_subparsers.add_parser("remove", help="Remove a user rule")
    rules_remove.add_argument("rule_id", help="Rule ID to remove")

    # config subcommand
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("init", help="Initialize default configuration")

    return parser


def _load(args: argparse.Namespace) -> AgentGateConfig:
    config = load_config(args.config)

    if args.log_level:
        config.log_level = args.log_level
    if args.rules_file:
        config.security.rules_path = args.rules_file

    setup_logging_from_config(config)
    return config


def _print_result(result: PermissionResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return

    print(f"Decision: {result.decision.value}")
    print(f"Reason:   {result.reason}")
    print(f"Tier:     {int(result.risk_tier)} ({result.risk_tier.label})")
    if result.matched_rule:
        print(f"Rule:     {result.matched_rule.id}")
    if result.paths:
        print(f"Paths:    {', '.join(result.paths)}")
    if result.domains:
        print(f"Network:  {', '.join(result.domains)}")
    if result.prompt_payload and result.prompt_payload.expected_side_effects:
        print("Side effects:")
        for effect in result.prompt_payload.expected_side_effects:
            print(f"  - {effect}")


def cmd_check(args: argparse.Namespace) -> int:
    """Evaluate a command and report the decision."""
    try:
        config = _load(args)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    changes = {}
    if args.policy:
        changes["approval_policy"] = ApprovalPolicy(args.policy)
    if args.network:
        changes["network_access"] = True
    if args.workspace:
        changes["workspace_roots"] = [*config.security.workspace_roots, *args.workspace]
    if changes:
        config.security = config.security.model_copy(update=changes)

    manager = PermissionManager.from_config(config)
    cwd = args.cwd or os.getcwd()

    try:
        if args.interactive:
            result = manager.request_approval(args.shell_command, cwd, TerminalApprover())
        elif args.auto_deny:
            result = manager.request_approval(args.shell_command, cwd, AutoApprover(auto_deny=True))
        else:
            result = manager.evaluate(args.shell_command, cwd)
    except GateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_result(result, args.json)
    return EXIT_CODES[result.decision]


def cmd_rules(args: argparse.Namespace) -> int:
    """Rule management commands."""
    try:
        config = _load(args)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    manager = PermissionManager.from_config(config)

    if args.rules_command == "list":
        rules = manager.get_rules()
        if args.json:
            print(json.dumps([r.to_dict() for r in rules], indent=2))
            return 0

        print(f"Rules ({len(rules)} total):")
        print("-" * 60)
        for rule in rules:
            pattern = " ".join(
                p.value if isinstance(p, Literal) else "{" + ",".join(p.values) + "}"
                for p in rule.pattern
            )
            origin = "built-in" if rule.is_builtin else "user"
            print(f"  {rule.decision.value:<7} {pattern:<30} {rule.id} ({origin})")
        return 0

    elif args.rules_command == "add":
        try:
            rule = manager.add_rule(args.name, args.argv, PermissionDecision(args.decision))
        except (GateError, ValueError) as e:
            print(f"Error adding rule: {e}", file=sys.stderr)
            return 1
        print(f"Added rule: {rule.id}")
        return 0

    elif args.rules_command == "remove":
        try:
            removed = manager.remove_rule(args.rule_id)
        except GateError as e:
            print(f"Error removing rule: {e}", file=sys.stderr)
            return 1
        if removed:
            print(f"Removed rule: {args.rule_id}")
            return 0
        print(f"Rule not found: {args.rule_id}")
        return 1

    else:
        print("Unknown rules command. Use: list, add, remove")
        return 1


def cmd_config_show(config_path: Optional[Path]) -> int:
    """Show current configuration."""
    try:
        config = load_config(config_path)
        print("Current agentgate Configuration:")
        print("=" * 50)
        print(config.model_dump_json(indent=2))
        return 0
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1


def cmd_config_init(config_path: Optional[Path]) -> int:
    """Initialize default configuration file."""
    from agentgate.config.loader import create_default_config, get_default_config_path

    target_path = config_path or get_default_config_path()
    try:
        create_default_config(target_path)
        print(f"Created default configuration at: {target_path}")
        return 0
    except Exception as e:
        print(f"Error creating configuration: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "check":
        return cmd_check(args)

    elif args.command == "rules":
        return cmd_rules(args)

    elif args.command == "config":
        if args.config_command == "show":
            return cmd_config_show(args.config)
        elif args.config_command == "init":
            return cmd_config_init(args.config)
        else:
            parser.parse_args(["config", "--help"])
            return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
