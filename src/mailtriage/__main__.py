"""Entry point for running mail triage as a module.

Usage:
    python -m mailtriage run
    python -m mailtriage --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env (FASTMAIL_API_TOKEN, MAILTRIAGE_CONFIG_PATH) first

from mailtriage.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
