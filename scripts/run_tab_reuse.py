#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[tab-reuse] host={os.environ.get('TAB_REUSE_HOST', '127.0.0.1')} | "
    f"port={os.environ.get('TAB_REUSE_PORT', '8765')} | "
    f"extension={os.environ.get('TAB_REUSE_EXTENSION_ID', 'any')} | "
    f"settle={os.environ.get('TAB_REUSE_SETTLE_WINDOW', '5.0')}s",
    file=sys.stderr,
)

from tab_reuse.main import main  # noqa: E402

if __name__ == "__main__":
    main()
