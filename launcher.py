#!/usr/bin/env python3
"""
Voice Notes GUI Launcher

Entry point for running from a source checkout (or a frozen bundle) without installing.
"""

import sys
from pathlib import Path

# Add the src directory to Python path
src_dir = Path(__file__).parent / "src"
if src_dir.exists():
    sys.path.insert(0, str(src_dir))

try:
    from voicenotes.gui import main
except ImportError as e:
    print(f"Error importing Voice Notes GUI: {e}")
    sys.exit(1)

if __name__ == "__main__":
    main()
