import sys

from findsymbols.cli import main

sys.exit(main())
