"""
Package entry point.

Allows running the application via:

    python -m lecfeedback

This simply forwards execution to lecfeedback.cli.main().
"""

from lecfeedback.cli import main

if __name__ == "__main__":
    main()
