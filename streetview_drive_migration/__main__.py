import sys

from streetview_drive_migration.cli.main import main

sys.exit(main())
