from gitlab_recurring_issues.main import main

raise SystemExit(main())
