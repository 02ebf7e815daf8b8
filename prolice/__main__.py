"""Entry-point for ``python -m prolice``."""

from __future__ import annotations

from prolice.cli import app


def main() -> None:
    app(prog_name="prolice")


if __name__ == "__main__":
    main()
