import sys

from passvault.cli import main

sys.exit(main())
