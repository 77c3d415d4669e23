import sys

from gacodegen.cli import main

sys.exit(main())
