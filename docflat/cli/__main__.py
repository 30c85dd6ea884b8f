from docflat.cli.app import main

raise SystemExit(main())
