"""Allow ``python -m repline`` (used by ``:switch`` to re-launch)."""

from repline.main import main

if __name__ == "__main__":
    main()
