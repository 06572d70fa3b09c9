import sys
import json
import logging
import argparse
from datetime import datetime

from core.config_loader import load_config
from core.app_context import AppContext
from notification.errors import NotificationConfigError
from notification.matcher import Notification
from notification.schema import Severity

logger = logging.getLogger(__name__)


def configure_logging(config):
    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format=config.logging.format
    )


def parse_fields(pairs):
    """Turn ["host=pve1", "type=vzdump"] into a field mapping."""
    fields = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"invalid field '{pair}', expected key=value")
        fields[key] = value
    return fields


def parse_timestamp(value):
    if value is None:
        return datetime.now().astimezone()
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid timestamp '{value}', expected ISO datetime or epoch seconds"
        )


def cmd_targets(ctx, args):
    return ctx.service.get_all_targets()


def cmd_matchers(ctx, args):
    return ctx.service.list_matchers()


def cmd_digest(ctx, args):
    _, digest = ctx.store.read()
    return {"digest": digest}


def cmd_match(ctx, args):
    event = Notification(
        severity=args.severity,
        fields=parse_fields(args.field),
        timestamp=parse_timestamp(args.timestamp),
    )
    return ctx.service.match(event)


def cmd_test_target(ctx, args):
    ctx.service.test_target(args.name)
    return {"target": args.name, "sent": True}


def build_parser():
    parser = argparse.ArgumentParser(description="Notification endpoint and matcher configuration")
    parser.add_argument('--config', type=str, default='config.yaml',
                        help='Settings file (default: config.yaml)')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('targets', help='List all notification targets').set_defaults(func=cmd_targets)
    sub.add_parser('matchers', help='List all matchers').set_defaults(func=cmd_matchers)
    sub.add_parser('digest', help='Print the current config digest').set_defaults(func=cmd_digest)

    match = sub.add_parser('match', help='Show which targets an event would notify')
    match.add_argument('--severity', choices=[s.value for s in Severity], default='info')
    match.add_argument('--field', action='append', metavar='KEY=VALUE',
                       help='Metadata field, may be repeated')
    match.add_argument('--timestamp', help='ISO datetime or epoch seconds (default: now)')
    match.set_defaults(func=cmd_match)

    test = sub.add_parser('test-target', help='Send a test notification to a target')
    test.add_argument('name')
    test.set_defaults(func=cmd_test_target)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config)
    ctx = AppContext.build(config)

    try:
        result = args.func(ctx, args)
    except NotificationConfigError as e:
        logger.error(f"{e.kind} error: {e.message}")
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 1
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
