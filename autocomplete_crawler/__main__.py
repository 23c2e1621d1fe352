import sys

from autocomplete_crawler.cli import main

sys.exit(main())
