"""Entry point for the assetctl CLI."""

from .cli import main_entrypoint as _main


if __name__ == "__main__":  # pragma: no cover - exercised manually
    _main()
