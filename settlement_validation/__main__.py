import sys

from settlement_validation.cli import main

sys.exit(main())
