"""Entry point for ``python -m cra_payroll``."""

import sys

from cra_payroll.cli import main

if __name__ == "__main__":
    sys.exit(main())
