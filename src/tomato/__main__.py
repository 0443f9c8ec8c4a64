from tomato.cli import main

raise SystemExit(main())
