import sys

from aitu_connect.cli import main

sys.exit(main())
