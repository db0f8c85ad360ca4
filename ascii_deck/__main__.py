import sys

from ascii_deck.cli import main

sys.exit(main())
