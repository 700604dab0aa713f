import sys

from ralphloop.cli import main

sys.exit(main())
