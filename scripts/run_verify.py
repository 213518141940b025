"""
Verify the person in front of the camera against the Face Access backend.

Usage:
    python scripts/run_verify.py
    python scripts/run_verify.py --image probe.jpg

Exits 0 when access is granted and 1 when the face is not recognized;
see frontend/cli.py for the failure exit codes.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.resolve()))

from frontend.cli import main_verify


if __name__ == "__main__":
    sys.exit(main_verify())
