import sys

from staticship.cli import main

sys.exit(main())
