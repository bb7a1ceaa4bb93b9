import sys

from docklock.cli import main

sys.exit(main())
