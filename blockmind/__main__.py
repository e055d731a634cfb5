import sys

from blockmind.cli import main

sys.exit(main())
