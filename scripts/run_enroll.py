"""
Enroll a face with the Face Access backend.

Usage:
    # Capture from the default webcam
    python scripts/run_enroll.py "Alice"

    # Describe a still image instead
    python scripts/run_enroll.py "Alice" --image photos/alice.jpg

    # Point at another backend
    python scripts/run_enroll.py "Alice" --url http://10.0.0.5:4000
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.resolve()))

from frontend.cli import main_enroll


if __name__ == "__main__":
    sys.exit(main_enroll())
