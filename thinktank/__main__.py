"""Entry point for running ThinkTank as a module."""

from thinktank.cli import app


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
