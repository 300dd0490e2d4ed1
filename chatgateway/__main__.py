"""Entry point for running the gateway as a module."""

from chatgateway.cli import app


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
