"""Allow running as `python -m lipekpwa`."""

from . import main

if __name__ == "__main__":
    main()
