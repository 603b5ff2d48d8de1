"""
Entry point for the price feed server.

Usage:
    python -m pricefeed
    pricefeed  # if installed via pip
"""

import sys


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    from pricefeed.config.settings import get_settings
    from pricefeed.dashboard.server import main as serve

    try:
        get_settings()
    except Exception as e:
        print(f"Configuration error: {e}")
        print("\nMake sure you have a .env file with:")
        print("  JWT_SECRET=your_token_secret")
        return 1

    try:
        serve()
    except KeyboardInterrupt:
        print("\nInterrupted by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
