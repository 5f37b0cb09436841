import sys

from scumbot.bot import main

sys.exit(main())
