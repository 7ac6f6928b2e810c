"""wpsr entrypoint (minimal dispatcher only).

Core implementation lives in:
  * wpsr_core.py  - headless CLI + rewrite pipeline + helpers
  * wpsr_gui.py   - Qt GUI frontend using the core pipeline

This file intentionally remains tiny so headless usage avoids importing Qt.
For programmatic use, import needed symbols directly from wpsr_core.
"""
from __future__ import annotations

import sys
from wpsr_core import headless_main


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if '--gui' not in args or '-h' in args or '--help' in args:
        return headless_main(args)
    # Lazy import so regular import of this module stays light
    try:
        import wpsr_gui  # type: ignore
    except ModuleNotFoundError as e:
        if 'PySide6' in str(e) or 'wpsr_gui' in str(e):
            print('GUI components not installed. Install with: pip install wp-size-suffix-remover[gui]')
            return 1
        raise
    rest = [a for a in args if a != '--gui']
    wpsr_gui.launch(rest[0] if rest and not rest[0].startswith('-') else None)
    return 0


if __name__ == '__main__':  # pragma: no cover
    raise SystemExit(main())
