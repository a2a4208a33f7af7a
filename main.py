from __future__ import annotations

from tenant_admin.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
