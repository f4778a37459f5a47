import sys
from pathlib import Path

GROUND_TILES_SRC = Path(__file__).resolve().parents[1] / "src"
CONFIG_SRC = Path(__file__).resolve().parents[3] / "packages" / "config" / "src"
TESTS_SRC = Path(__file__).resolve().parent

sys.path.insert(0, str(CONFIG_SRC))
sys.path.insert(0, str(GROUND_TILES_SRC))
sys.path.insert(0, str(TESTS_SRC))
