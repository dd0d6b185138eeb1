import argparse
import asyncio
import json
import logging
import sys
import typing

import yaml

from rollexpr.config import DEFAULT_SETTINGS_FILE, EngineConfig
from rollexpr.errors import DiceRollError
from rollexpr.functions import MathFunction
from rollexpr.roll import Roll


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollexpr",
        description="Roll a dice formula, e.g. '4d6kh3 + 2 * (1d8r1 + @bonus)'.",
    )
    parser.add_argument("formula", nargs="*", help="the formula to roll")
    parser.add_argument(
        "--data", metavar="FILE", help="YAML file with the values of @symbols"
    )
    parser.add_argument(
        "--settings",
        metavar="FILE",
        default=DEFAULT_SETTINGS_FILE,
        help="YAML engine settings (max_dice, math_functions, seed, timeout)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--minimize", action="store_true", help="roll every die as its lowest face")
    mode.add_argument("--maximize", action="store_true", help="roll every die as its highest face")
    parser.add_argument("--json", action="store_true", help="print the serialized roll")
    parser.add_argument(
        "--functions",
        nargs="*",
        metavar="NAME",
        help="list the available functions, or describe the named ones",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="log debug output")
    return parser


def load_yaml(path: str) -> typing.Any:
    with open(path) as f:
        return yaml.safe_load(f)


def function_help(config: EngineConfig, names: typing.List[str]) -> str:
    if not names:
        message = ""
        max_namelen = max(len(x) for x in config.math_functions.keys())
        for name, fn in sorted(config.math_functions.items()):
            description = fn.description() if isinstance(fn, MathFunction) else ""
            message += name + " " * (max_namelen - len(name) + 2) + description + "\n"
        message += "\nType rollexpr --functions <name> to get help on the function <name>."
        return message

    messages = []
    for name in names:
        if name.lower() not in config.math_functions:
            messages.append("error: function %s not found." % name)
        else:
            messages.append(config.function_help(name.lower()))
    return "\n\n".join(messages)


def describe(roll: Roll) -> str:
    message = "Input: %s\n" % roll.formula
    if roll.result != roll.formula:
        message += "=> %s\n" % roll.result
    return message + "Result: %s" % (roll.total,)


async def roll_with_timeout(roll: Roll, args: argparse.Namespace, timeout) -> Roll:
    return await asyncio.wait_for(
        roll.evaluate_async(minimize=args.minimize, maximize=args.maximize),
        timeout=timeout,
    )


def main(argv: typing.Optional[typing.List[str]] = None) -> int:
    args = make_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        settings = load_yaml(args.settings) or {}
        config = EngineConfig.from_settings(settings)
        data = load_yaml(args.data) if args.data else None
    except (OSError, yaml.YAMLError, DiceRollError) as e:
        print("Error in settings: %s" % e, file=sys.stderr)
        return 1

    if args.functions is not None:
        print(function_help(config, args.functions))
        return 0

    if not args.formula:
        print("error: no formula given. Type rollexpr --help for usage.", file=sys.stderr)
        return 1

    try:
        roll = Roll(" ".join(args.formula), data, config=config)
        asyncio.run(roll_with_timeout(roll, args, settings.get("timeout")))
    except asyncio.TimeoutError:
        print("Your roll took too long to evaluate. Sorry!", file=sys.stderr)
        return 1
    except DiceRollError as e:
        print("Error in input: %s" % e.args[0], file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(roll.to_json(), indent=2))
    else:
        print(describe(roll))
    return 0


if __name__ == "__main__":
    sys.exit(main())
