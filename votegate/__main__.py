from votegate.cli import main

raise SystemExit(main())
