"""Generate a 256-bit character-set table declaration."""

from __future__ import annotations

import sys

__all__ = ["character_table", "main"]

USAGE = """Usage: tabler <var> <charset>

Produces a character table with the given variable name."""


def character_table(name: str, charset: str) -> str:
    """Return a declaration of ``name`` as four 64-bit masks covering ``charset``.

    Raises ValueError for characters outside the first 256 code points.
    """
    buckets = [0, 0, 0, 0]
    for ch in charset:
        code = ord(ch)
        if code >= 256:
            raise ValueError(f"character {ch!r} is outside the 256-character table")
        bucket, bit = divmod(code, 64)
        buckets[bucket] |= 1 << bit
    lines = [f"var {name} = characterSet{{", *(f"\t0x{v:016x}," for v in buckets), "}"]
    return "\n".join(lines) + "\n"


def main(argv: list[str] | None = None) -> int:
    """Print the table for ``<var> <charset>``; return the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 2:
        print(USAGE, file=sys.stderr)
        return 1
    try:
        table = character_table(args[0], args[1])
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    sys.stdout.write(table)
    return 0


if __name__ == "__main__":
    sys.exit(main())