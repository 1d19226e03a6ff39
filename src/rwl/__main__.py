from __future__ import annotations

from rwl.commands import main

if __name__ == "__main__":
    raise SystemExit(main())
