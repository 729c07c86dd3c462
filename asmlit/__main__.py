import sys

from asmlit.cli import main

sys.exit(main())
