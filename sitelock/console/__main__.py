import sys

from sitelock.console.commands import main

if __name__ == "__main__":
    sys.exit(main())
