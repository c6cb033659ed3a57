from health_monitor.main import main

raise SystemExit(main())
