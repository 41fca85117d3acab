import sys

from simple_ca.cli import main

if __name__ == "__main__":
    sys.exit(main())
