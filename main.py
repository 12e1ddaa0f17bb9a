"""
Homely — Entry Point.

Single entry point: `python main.py` runs one refill pass that tops up
future chore events for every household. Schedule it externally (e.g. cron).
"""

from homely.app import main

if __name__ == "__main__":
    raise SystemExit(main())
