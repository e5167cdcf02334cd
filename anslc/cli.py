import argparse
import sys

from . import emitter, lowering, parser, resolver, validator
from .constants import MAX_REGISTERS, NAME, SYSTEM_LIB_ROOT
from .diagnostics import Diagnostics
from .errors import CompileError, ResolutionError
from .preprocessor import Preprocessor
from .source import Source


def _register_count(text):
    value = int(text)
    if not 1 <= value <= MAX_REGISTERS:
        raise argparse.ArgumentTypeError(f"register count must be between 1 and {MAX_REGISTERS}")
    return value


def main(argv=None):
    ap = argparse.ArgumentParser(prog=NAME, description="ANSL compiler for the nisvc-as assembler")
    ap.add_argument("input", help="Input .ansl file")
    ap.add_argument("-o", "--output", help="Output assembly file", default="out.nvs")
    ap.add_argument("-r", "--registers", type=_register_count, default=MAX_REGISTERS,
                    help=f"Number of machine registers available (1-{MAX_REGISTERS})")
    ap.add_argument("--system-root", default=SYSTEM_LIB_ROOT,
                    help="Directory searched by `#include system`")
    ap.add_argument("--emit", choices=["tokens", "ast", "ir", "asm"], default="asm",
                    help="Stop after the given stage and print its output")
    ap.add_argument("--no-validate", action="store_true", help="Skip validation checks")
    ap.add_argument("--no-optimize", action="store_true", help="Skip the peephole pass")
    ap.add_argument("-v", "--verbose", action="count", default=0,
                    help="Increase diagnostic output (up to -vvv)")
    args = ap.parse_args(argv)

    diagnostics = Diagnostics(verbosity=args.verbose)
    source = Source()

    try:
        pre = Preprocessor(source, system_root=args.system_root, diagnostics=diagnostics)
        expanded = pre.process_file(args.input)

        if args.emit == "tokens":
            for token in parser.tokenize(expanded.text):
                print(f"{token.type}\t{token.value!r}\t{token.line}:{token.column}")
            return

        mod = parser.parse(expanded.text, origin=expanded.origin)
    except CompileError as e:
        print(e.format(source), file=sys.stderr)
        sys.exit(1)

    # Run validation unless disabled
    if not args.no_validate:
        try:
            val = validator.Validator(mod)
            for warning in val.validate():
                diagnostics.warning(warning)
        except validator.ValidationError as e:
            print(f"Validation error in {args.input}:", file=sys.stderr)
            print(f"  {e}", file=sys.stderr)
            sys.exit(1)

    if args.emit == "ast":
        for item in mod.items:
            print(item)
        return

    try:
        lower = lowering.Lowering(mod, diagnostics=diagnostics)
        blocks = lower.lower()
    except CompileError as e:
        print(e.format(source), file=sys.stderr)
        sys.exit(1)

    if args.emit == "ir":
        for block in blocks:
            print(block.dump())
        return

    resolutions = []
    for block in blocks:
        try:
            resolutions.append(resolver.resolve_block(block, capacity=args.registers, diagnostics=diagnostics))
        except ResolutionError as e:
            print(f"Resolution error in fn '{block.name}':", file=sys.stderr)
            print(f"  {type(e).__name__}: {e}", file=sys.stderr)
            sys.exit(1)
        diagnostics.very_verbose(resolutions[-1].dump())

    try:
        data = emitter.DataSection.from_lowering(lower)
        em = emitter.Emitter(data, optimize=not args.no_optimize, diagnostics=diagnostics)
        asm = em.render(resolutions)
    except CompileError as e:
        print(e.format(source), file=sys.stderr)
        sys.exit(1)

    with open(args.output, "w", encoding="utf-8") as f:
        f.write(asm)

    print(f"Wrote assembly to {args.output}")


if __name__ == "__main__":
    main()
