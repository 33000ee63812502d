import sys

from bikeshare_refresh.cli import main

sys.exit(main())
