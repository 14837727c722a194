from modelsync.cli import main

raise SystemExit(main())
