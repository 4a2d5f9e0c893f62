import sys

from apphost.main import main

sys.exit(main())
