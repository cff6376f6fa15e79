from pprof_remote.cli import main

raise SystemExit(main())
