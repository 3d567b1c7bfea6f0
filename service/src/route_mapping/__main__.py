import argparse
import logging
import sys
from pathlib import Path

from . import codec
from .errors import ParseError

parser = argparse.ArgumentParser(description="Author and check route mapping configurations")

subparsers = parser.add_subparsers(dest="cmd", required=True)

parser_serve = subparsers.add_parser("serve", help="start the server")

parser_validate = subparsers.add_parser("validate", help="validate a mapping document")
parser_validate.add_argument("file", type=Path, help="The YAML mapping document")

parser_normalize = subparsers.add_parser(
    "normalize", help="print the canonical form of a mapping document"
)
parser_normalize.add_argument("file", type=Path, help="The YAML mapping document")

parser_runtime = subparsers.add_parser(
    "runtime", help="print a mapping document in the runtime loader layout"
)
parser_runtime.add_argument("file", type=Path, help="The YAML mapping document")


def main(argv: list[str] | None = None) -> int:
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format='%(levelname)s:%(name)s: %(message)s')

    if args.cmd == "serve":
        from .serve import serve

        serve()
        return 0

    text = args.file.read_text(encoding="utf-8")

    if args.cmd == "validate":
        report = codec.validate(text)
        print(report.message)
        for issue in report.issues:
            print(f"  {issue}")
        return 0 if report.valid else 1

    try:
        mapping_set = codec.parse(text)
    except ParseError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.cmd == "normalize":
        print(codec.generate(mapping_set), end="")
    else:
        print(codec.generate_runtime(mapping_set), end="")
    return 0


if __name__ == "__main__":
    sys.exit(main())
