#!/usr/bin/env python3
"""
regvm CLI - load, check and run register-machine programs
Commands: run · check · version
"""

import argparse
import logging
import sys

from regvm import __version__


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _load_src(args):
    """Read a program file and return its Listing, or exit 1 on a parse error."""
    from regvm.isa import Dialect
    from regvm.loader import ParseError, load_file
    from regvm.program import ProgramError
    dialect = Dialect(args.dialect) if args.dialect else None
    try:
        return load_file(args.input, dialect, args.registers)
    except ParseError as e:
        print(f"❌ Parse error: {e}", file=sys.stderr)
        sys.exit(1)
    except ProgramError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"❌ Cannot read {args.input}: {e}", file=sys.stderr)
        sys.exit(1)


def _parse_assignment(text):
    """``a=7`` / ``r0=1`` → (name, value)"""
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    try:
        return name.strip(), int(value, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"bad register value in {text!r}") from None


# ---------------------------------------------------------------------------
# sub-command handlers
# ---------------------------------------------------------------------------

def cmd_check(args):
    """regvm check program.txt  - validate and print the decoded listing"""
    listing = _load_src(args)
    print(listing.program.listing())
    binding = listing.ip
    print(f"\n✅ {len(listing.program)} instructions  "
          f"dialect={listing.dialect.value}  regs={listing.program.register_count}  "
          f"ip={binding}")


def cmd_run(args):
    """regvm run program.txt [--set a=7] [--turbo] [--max-steps N] [--trace] [-v]"""
    from regvm.turbo import HookChain, as_interrupt, find_multiply_loops, step_limit
    from regvm.vm import VMError

    if args.trace:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    listing = _load_src(args)
    vm = listing.make_vm(debug=args.trace)
    try:
        for name, value in args.set or ():
            vm.set_register(name, value)
    except VMError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    hooks = HookChain(find_multiply_loops(vm.program)) if args.turbo else None

    if args.max_steps:
        limit = step_limit(args.max_steps)
        if hooks:
            patch = as_interrupt(hooks)

            def interrupt(m):
                return limit(m) and patch(m)
        else:
            interrupt = limit
        out = vm.run_with_interrupt(interrupt)
    elif hooks:
        out = vm.run_turbo(hooks)
    else:
        out = vm.run_to_end()

    for value in out:
        print(value)
    print(vm.format_registers())
    if args.verbose:
        state = "halted" if vm.halted else f"stopped at ip={vm.ip}"
        print(f"\n[VM] {state}  steps={vm.steps}  fast-forwards={vm.fast_forwards}")
        if hooks:
            print(f"[VM] turbo windows={len(hooks)}")


# ---------------------------------------------------------------------------
# main
# ---------------------------------------------------------------------------

def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="regvm",
        description=(
            f"regvm {__version__} - register-machine interpreter\n\n"
            "  run        Load and execute a program\n"
            "  check      Validate a program and print its listing\n"
            "  version    Show version info\n"
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"regvm {__version__}"
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_source(p):
        p.add_argument("input", help="program text file")
        p.add_argument("--dialect", choices=("asm", "alu"),
                       help="instruction family (default: detect)")
        p.add_argument("--registers", type=int, metavar="N",
                       help="register count (default: asm 4, alu 6)")

    # ── run ────────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Execute a program")
    add_source(p_run)
    p_run.add_argument("--set", action="append", type=_parse_assignment,
                       metavar="REG=VALUE", help="initial register value (repeatable)")
    p_run.add_argument("--turbo", action="store_true",
                       help="fast-forward recognised multiply loops")
    p_run.add_argument("--max-steps", type=int, default=0, metavar="N",
                       help="stop after N instructions (0 = run to the end)")
    p_run.add_argument("--trace", action="store_true", help="Trace execution")
    p_run.add_argument("-v", "--verbose", action="store_true", help="Show run summary")
    p_run.set_defaults(func=cmd_run)

    # ── check ──────────────────────────────────────────────────────────────
    p_check = sub.add_parser("check", help="Validate a program and print its listing")
    add_source(p_check)
    p_check.set_defaults(func=cmd_check)

    # ── version ────────────────────────────────────────────────────────────
    p_ver = sub.add_parser("version", help="Show version info")
    p_ver.set_defaults(func=lambda _: print(f"regvm {__version__}"))

    # ── dispatch ───────────────────────────────────────────────────────────
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
