import sys

from hostfetch.cli import main

sys.exit(main())
