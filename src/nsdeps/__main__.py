import sys

from nsdeps.cli import main

sys.exit(main())
