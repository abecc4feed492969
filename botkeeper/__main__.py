"""Allow ``python -m botkeeper``."""

from botkeeper.cli import app

if __name__ == "__main__":
    app()
