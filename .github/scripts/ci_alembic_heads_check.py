"""CI gate: assert the Alembic migration graph is a single chain.

A migration that sets down_revision = None, or two migrations sharing a
parent, splits the graph and makes upgrade order non-deterministic. New
migrations must chain off the current head.

Usage:
  python .github/scripts/ci_alembic_heads_check.py
"""
from __future__ import annotations

import sys
from pathlib import Path

# Alembic needs the api directory on sys.path and the alembic.ini location.
api_root = Path(__file__).resolve().parents[2] / "apps" / "api"
sys.path.insert(0, str(api_root))

from alembic.config import Config
from alembic.script import ScriptDirectory

MAX_HEADS = 1
MAX_ROOTS = 1


def main() -> int:
    cfg = Config(str(api_root / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_root / "alembic"))

    script = ScriptDirectory.from_config(cfg)
    heads = sorted(script.get_heads())

    if len(heads) > MAX_HEADS:
        print("MIGRATION HEAD CHECK FAILED")
        print(f"  Expected a single head, found {len(heads)}:")
        for h in heads:
            print(f"    - {h}")
        print()
        print("  Fix: chain the newer migration off the other head.")
        return 1

    revisions = list(script.walk_revisions())
    roots = [r.revision for r in revisions if r.down_revision is None]

    if len(roots) > MAX_ROOTS:
        print("MIGRATION ROOT CHECK FAILED")
        print(f"  Expected at most {MAX_ROOTS} root, found {len(roots)}:")
        for r in sorted(roots):
            print(f"    - {r}")
        print()
        print("  Fix: new migrations must chain off an existing head, not use down_revision = None.")
        return 1

    print(f"Migration integrity check: OK ({len(heads)} heads, {len(roots)} roots, {len(revisions)} total)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
