from hirn_login.cli import main

raise SystemExit(main())
