import sys

from parrot.offchain.cli import main

sys.exit(main())
