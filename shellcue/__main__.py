# shellcue/__main__.py
"""
Entry point for the shellcue CLI.
"""
from shellcue.cli.main import app


def main() -> None:
    """Run the shellcue command-line application."""
    app()


if __name__ == "__main__":
    main()
