"""Allow ``python -m fnitout``."""

import sys

from fnitout.cli import main

sys.exit(main())
