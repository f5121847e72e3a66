import sys

from findsymbols.cli import main

if __name__ == "__main__":
    sys.exit(main())
