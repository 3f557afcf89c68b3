"""Entry point for `python -m dappbot_cli` and the `dappbot` console script."""

from __future__ import annotations

from dappbot_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
