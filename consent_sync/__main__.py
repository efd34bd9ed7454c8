import sys

from consent_sync.cli import main

sys.exit(main())
