from catalogcache.cli import main

raise SystemExit(main())
